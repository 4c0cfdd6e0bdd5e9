"""Credit lifecycle endpoints under /v1/credits"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request

from microcredit_engine.api.dependencies import get_request_id, get_services
from microcredit_engine.api.v1.errors import unit_of_work
from microcredit_engine.api.v1.schemas import (
    ActorRequest,
    AdminActionRequest,
    CreditRequest,
    CreditResponse,
    DetentionResponse,
    DocumentsRequest,
    RepaymentRequest,
    RepaymentResponse,
    ReviewRequest,
)
from microcredit_engine.domain.models import Money
from microcredit_engine.infrastructure.database.models import CreditApplication
from microcredit_engine.services.container import ServiceContainer

router = APIRouter()


def parse_credit_id(credit_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(credit_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid credit ID format")


def to_response(credit: CreditApplication) -> CreditResponse:
    return CreditResponse(
        credit_id=str(credit.id),
        customer_id=credit.customer_id,
        product_type=credit.product_type,
        currency=credit.currency,
        status=credit.status,
        requested_cents=credit.requested_cents,
        approved_cents=credit.approved_cents,
        disbursed_cents=credit.disbursed_cents,
        processing_fee_cents=credit.processing_fee_cents,
        interest_rate_bps=credit.interest_rate_bps,
        total_interest_cents=credit.total_interest_cents,
        caution_cents=credit.caution_cents,
        installment_cents=credit.installment_cents,
        total_paid_cents=credit.total_paid_cents,
        late_interest_cents=credit.late_interest_cents,
        remaining_cents=credit.remaining_cents,
        maturity_date=credit.maturity_date,
        sponsor_id=credit.sponsor_id,
        group_id=str(credit.group_id) if credit.group_id else None,
        renewed_from_id=str(credit.renewed_from_id) if credit.renewed_from_id else None,
        status_reason=credit.status_reason,
    )


@router.post("/credits", response_model=CreditResponse, status_code=201)
def request_credit(
    request_body: CreditRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    """
    Request a credit.

    Eligibility is re-validated in the same transaction that creates the
    application. An ineligible customer gets 422 with every unmet condition.
    """
    with unit_of_work(services.db, get_request_id(request)):
        outcome = services.credits.request_credit(
            request_body.customer_id,
            request_body.product_type,
            request_body.money(),
            request_body.product_args(),
            documents=request_body.documents,
        )
        if not outcome.accepted:
            raise HTTPException(
                status_code=422,
                detail={"message": "Customer is not eligible", "reasons": outcome.reasons},
            )

    return to_response(outcome.credit)


@router.get("/credits/{credit_id}", response_model=CreditResponse)
def get_credit(credit_id: str, request: Request, services: ServiceContainer = Depends(get_services)):
    credit_uuid = parse_credit_id(credit_id)
    with unit_of_work(services.db, get_request_id(request)):
        credit = services.credits.get_credit(credit_uuid)
    return to_response(credit)


@router.post("/credits/{credit_id}/documents", response_model=CreditResponse)
def submit_documents(
    credit_id: str,
    request_body: DocumentsRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    credit_uuid = parse_credit_id(credit_id)
    with unit_of_work(services.db, get_request_id(request)):
        credit = services.credits.submit_documents(credit_uuid, request_body.documents)
    return to_response(credit)


@router.post("/credits/{credit_id}/review/start", response_model=CreditResponse)
def begin_review(
    credit_id: str,
    request_body: ActorRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    """Take submitted documents into administrative review"""
    credit_uuid = parse_credit_id(credit_id)
    with unit_of_work(services.db, get_request_id(request)):
        credit = services.credits.begin_review(credit_uuid, request_body.actor_id)
    return to_response(credit)


@router.post("/credits/{credit_id}/review", response_model=CreditResponse)
def validate_documents(
    credit_id: str,
    request_body: ReviewRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    """Approve the documents (caution pending) or reject them (cancelled)"""
    credit_uuid = parse_credit_id(credit_id)
    with unit_of_work(services.db, get_request_id(request)):
        credit = services.credits.validate_documents(
            credit_uuid,
            request_body.reviewer_id,
            request_body.approved,
            request_body.comments,
        )
    return to_response(credit)


@router.post("/credits/{credit_id}/caution", response_model=CreditResponse)
def confirm_caution(credit_id: str, request: Request, services: ServiceContainer = Depends(get_services)):
    credit_uuid = parse_credit_id(credit_id)
    with unit_of_work(services.db, get_request_id(request)):
        credit = services.credits.confirm_caution(credit_uuid)
    return to_response(credit)


@router.post("/credits/{credit_id}/disburse", response_model=CreditResponse)
def disburse_credit(credit_id: str, request: Request, services: ServiceContainer = Depends(get_services)):
    credit_uuid = parse_credit_id(credit_id)
    with unit_of_work(services.db, get_request_id(request)):
        credit = services.credits.disburse_credit(credit_uuid)
    return to_response(credit)


@router.post("/credits/{credit_id}/repayments", response_model=RepaymentResponse)
def record_repayment(
    credit_id: str,
    request_body: RepaymentRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    """Apply a payment. Overpayments and currency mismatches are rejected with 409."""
    credit_uuid = parse_credit_id(credit_id)
    with unit_of_work(services.db, get_request_id(request)):
        summary = services.credits.record_repayment(
            credit_uuid,
            Money(request_body.amount_cents, request_body.currency),
            source_account=request_body.source_account,
        )

    return RepaymentResponse(
        credit_id=str(summary.credit_id),
        paid_cents=summary.paid.amount_cents,
        total_paid_cents=summary.total_paid.amount_cents,
        remaining_cents=summary.remaining.amount_cents,
        status=summary.status.value,
        on_time=summary.on_time,
        days_late=summary.days_late,
    )


@router.post("/credits/{credit_id}/cancel", response_model=CreditResponse)
def cancel_credit(
    credit_id: str,
    request_body: AdminActionRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    credit_uuid = parse_credit_id(credit_id)
    with unit_of_work(services.db, get_request_id(request)):
        credit = services.credits.cancel_credit(credit_uuid, request_body.actor_id, request_body.reason)
    return to_response(credit)


@router.post("/credits/{credit_id}/default", response_model=CreditResponse)
def declare_default(
    credit_id: str,
    request_body: AdminActionRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    credit_uuid = parse_credit_id(credit_id)
    with unit_of_work(services.db, get_request_id(request)):
        credit = services.credits.declare_default(credit_uuid, request_body.actor_id, request_body.reason)
    return to_response(credit)


@router.post("/credits/{credit_id}/legal", response_model=CreditResponse)
def refer_to_legal(
    credit_id: str,
    request_body: AdminActionRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    credit_uuid = parse_credit_id(credit_id)
    with unit_of_work(services.db, get_request_id(request)):
        credit = services.credits.refer_to_legal(credit_uuid, request_body.actor_id, request_body.reason)
    return to_response(credit)


@router.post("/credits/{credit_id}/detention/release", response_model=DetentionResponse)
def release_detention(
    credit_id: str,
    request_body: AdminActionRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    """Lift the virtual detention of a credit; status and balance are unchanged"""
    credit_uuid = parse_credit_id(credit_id)
    with unit_of_work(services.db, get_request_id(request)):
        detention = services.credits.release_detention(credit_uuid, request_body.actor_id, request_body.reason)

    return DetentionResponse(
        detention_id=str(detention.id),
        credit_id=str(detention.credit_id),
        is_active=detention.is_active,
        released_on=detention.released_on,
        release_reason=detention.release_reason,
    )
