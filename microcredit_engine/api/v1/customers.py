"""Eligibility profile and standing overrides under /v1/customers"""

from fastapi import APIRouter, Depends, HTTPException, Request

from microcredit_engine.api.dependencies import get_request_id, get_services
from microcredit_engine.api.v1.errors import unit_of_work
from microcredit_engine.api.v1.schemas import (
    ActorRequest,
    AdminActionRequest,
    CreditLineSchema,
    ProfileResponse,
    WhitelistRequest,
)
from microcredit_engine.domain.models import Money
from microcredit_engine.infrastructure.database.models import EligibilityProfile
from microcredit_engine.services.container import ServiceContainer

router = APIRouter()


def to_response(profile: EligibilityProfile) -> ProfileResponse:
    blacklisted = profile.standing == "BLACKLISTED"
    lines = [
        CreditLineSchema(
            currency=line.currency,
            limit_cents=line.limit_cents,
            used_cents=line.used_cents,
            available_cents=0 if blacklisted else max(0, line.limit_cents - line.used_cents),
        )
        for line in sorted(profile.credit_lines, key=lambda line: line.currency)
    ]
    return ProfileResponse(
        customer_id=profile.customer_id,
        standing=profile.standing,
        score=profile.score,
        total_loans=profile.total_loans,
        completed_loans=profile.completed_loans,
        defaulted_loans=profile.defaulted_loans,
        late_loans=profile.late_loans,
        on_time_rate=profile.on_time_rate,
        blacklist_reason=profile.blacklist_reason,
        whitelist_reason=profile.whitelist_reason,
        credit_lines=lines,
    )


@router.get("/customers/{customer_id}/eligibility-profile", response_model=ProfileResponse)
def get_profile(customer_id: str, request: Request, services: ServiceContainer = Depends(get_services)):
    """Standing, score, repayment statistics and credit lines; created on first access"""
    with unit_of_work(services.db, get_request_id(request)):
        profile = services.eligibility.get_profile(customer_id)
    return to_response(profile)


@router.post("/customers/{customer_id}/blacklist", response_model=ProfileResponse)
def blacklist_customer(
    customer_id: str,
    request_body: AdminActionRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    with unit_of_work(services.db, get_request_id(request)):
        profile = services.eligibility.blacklist(customer_id, request_body.reason, request_body.actor_id)
    return to_response(profile)


@router.post("/customers/{customer_id}/whitelist", response_model=ProfileResponse)
def whitelist_customer(
    customer_id: str,
    request_body: WhitelistRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    """Whitelist a customer. A new limit needs its currency."""
    new_limit = None
    if request_body.new_limit_cents is not None:
        if request_body.currency is None:
            raise HTTPException(status_code=422, detail="currency is required with new_limit_cents")
        new_limit = Money(request_body.new_limit_cents, request_body.currency)

    with unit_of_work(services.db, get_request_id(request)):
        profile = services.eligibility.whitelist(
            customer_id,
            request_body.reason,
            request_body.actor_id,
            new_limit=new_limit,
        )
    return to_response(profile)


@router.post("/customers/{customer_id}/reset-standing", response_model=ProfileResponse)
def reset_standing(
    customer_id: str,
    request_body: ActorRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    with unit_of_work(services.db, get_request_id(request)):
        profile = services.eligibility.reset_standing(customer_id, request_body.actor_id)
    return to_response(profile)
