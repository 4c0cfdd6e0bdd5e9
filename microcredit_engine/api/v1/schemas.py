"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from microcredit_engine.domain.models import (
    AccountType,
    CreditTerms,
    Currency,
    Money,
    ProductArgs,
    ProductType,
)


class ProductRequest(BaseModel):
    """Product, amount and product-specific arguments shared by eligibility checks and credit requests"""

    customer_id: str = Field(..., min_length=1, description="Customer identifier")
    product_type: ProductType
    amount_cents: int = Field(..., gt=0, description="Requested amount in minor units")
    currency: Currency
    duration_months: Optional[int] = Field(None, gt=0)
    sponsor_id: Optional[str] = None
    group_id: Optional[uuid.UUID] = None
    purpose: Optional[str] = None

    def money(self) -> Money:
        return Money(self.amount_cents, self.currency)

    def product_args(self) -> ProductArgs:
        return ProductArgs(
            duration_months=self.duration_months,
            sponsor_id=self.sponsor_id,
            group_id=self.group_id,
            purpose=self.purpose,
        )


class CreditRequest(ProductRequest):
    """Request body for POST /v1/credits"""

    documents: Optional[Dict[str, Any]] = None


class TermsSchema(BaseModel):
    """Pricing quote of a credit"""

    amount_cents: int
    currency: Currency
    processing_fee_cents: int
    net_amount_cents: int
    interest_rate_bps: int
    total_interest_cents: int
    total_repayable_cents: int
    caution_bps: int
    caution_cents: int
    duration_months: Optional[int] = None
    duration_days: Optional[int] = None
    installment_cents: Optional[int] = None

    @classmethod
    def from_terms(cls, terms: CreditTerms) -> "TermsSchema":
        return cls(
            amount_cents=terms.amount.amount_cents,
            currency=terms.amount.currency,
            processing_fee_cents=terms.processing_fee.amount_cents,
            net_amount_cents=terms.net_amount.amount_cents,
            interest_rate_bps=terms.interest_rate_bps,
            total_interest_cents=terms.total_interest.amount_cents,
            total_repayable_cents=terms.total_repayable.amount_cents,
            caution_bps=terms.caution_bps,
            caution_cents=terms.caution_amount.amount_cents,
            duration_months=terms.duration_months,
            duration_days=terms.duration_days,
            installment_cents=terms.installment.amount_cents if terms.installment else None,
        )


class EligibilityResponse(BaseModel):
    """Response for POST /v1/eligibility"""

    eligible: bool
    reasons: List[str]
    terms: Optional[TermsSchema] = None


class MaturityOptionsResponse(BaseModel):
    """Response for GET /v1/products/individual-term/options"""

    amount_cents: int
    currency: Currency
    options: List[TermsSchema]


class CreditResponse(BaseModel):
    """A credit application with its running totals"""

    credit_id: str
    customer_id: str
    product_type: str
    currency: str
    status: str
    requested_cents: int
    approved_cents: int
    disbursed_cents: int
    processing_fee_cents: int
    interest_rate_bps: int
    total_interest_cents: int
    caution_cents: int
    installment_cents: Optional[int] = None
    total_paid_cents: int
    late_interest_cents: int
    remaining_cents: int
    maturity_date: Optional[date] = None
    sponsor_id: Optional[str] = None
    group_id: Optional[str] = None
    renewed_from_id: Optional[str] = None
    status_reason: Optional[str] = None


class DocumentsRequest(BaseModel):
    documents: Dict[str, Any] = Field(..., min_length=1)


class ReviewRequest(BaseModel):
    """Request body for POST /v1/credits/{id}/review"""

    reviewer_id: str = Field(..., min_length=1)
    approved: bool
    comments: Optional[str] = None


class RepaymentRequest(BaseModel):
    """Request body for POST /v1/credits/{id}/repayments"""

    amount_cents: int = Field(..., gt=0)
    currency: Currency
    source_account: Optional[AccountType] = Field(None, description="Account debited for the payment, if any")


class RepaymentResponse(BaseModel):
    credit_id: str
    paid_cents: int
    total_paid_cents: int
    remaining_cents: int
    status: str
    on_time: bool
    days_late: int


class AdminActionRequest(BaseModel):
    """Actor and reason of an administrative action"""

    actor_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)


class DetentionResponse(BaseModel):
    detention_id: str
    credit_id: str
    is_active: bool
    released_on: Optional[date] = None
    release_reason: Optional[str] = None


class CreditLineSchema(BaseModel):
    currency: str
    limit_cents: int
    used_cents: int
    available_cents: int


class ProfileResponse(BaseModel):
    """Response for GET /v1/customers/{id}/eligibility-profile"""

    customer_id: str
    standing: str
    score: int
    total_loans: int
    completed_loans: int
    defaulted_loans: int
    late_loans: int
    on_time_rate: float
    blacklist_reason: Optional[str] = None
    whitelist_reason: Optional[str] = None
    credit_lines: List[CreditLineSchema]


class WhitelistRequest(AdminActionRequest):
    """Whitelisting, optionally granting a new limit in one currency"""

    new_limit_cents: Optional[int] = Field(None, ge=0)
    currency: Optional[Currency] = None


class ActorRequest(BaseModel):
    """Actor of an action that needs no reason"""

    actor_id: str = Field(..., min_length=1)


class GroupCreateRequest(BaseModel):
    """Request body for POST /v1/groups"""

    name: str = Field(..., min_length=1)
    created_by: str = Field(..., min_length=1)
    member_ids: List[str]


class GroupResponse(BaseModel):
    group_id: str
    name: str
    is_active: bool
    member_ids: List[str]


class ContributionRequest(BaseModel):
    customer_id: str = Field(..., min_length=1)
    amount_cents: int = Field(..., gt=0)
    currency: Currency


class ContributionResponse(BaseModel):
    group_id: str
    customer_id: str
    amount_cents: int
    pooled_cents: int
    currency: Currency


class PassReportResponse(BaseModel):
    """Summary of a scheduled pass run on demand"""

    name: str
    business_date: date
    examined: int
    processed: int
    skipped: int
    failed: int
