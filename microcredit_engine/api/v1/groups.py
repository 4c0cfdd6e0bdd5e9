"""Savings group endpoints backing the group-savings product"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request

from microcredit_engine.api.dependencies import get_request_id, get_services
from microcredit_engine.api.v1.errors import unit_of_work
from microcredit_engine.api.v1.schemas import (
    ContributionRequest,
    ContributionResponse,
    GroupCreateRequest,
    GroupResponse,
)
from microcredit_engine.domain.models import Money
from microcredit_engine.services.container import ServiceContainer

router = APIRouter()


@router.post("/groups", response_model=GroupResponse, status_code=201)
def create_group(
    request_body: GroupCreateRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    with unit_of_work(services.db, get_request_id(request)):
        group = services.groups.create_group(request_body.name, request_body.created_by, request_body.member_ids)
        member_ids = [member.customer_id for member in group.members]

    return GroupResponse(group_id=str(group.id), name=group.name, is_active=group.is_active, member_ids=member_ids)


@router.post("/groups/{group_id}/contributions", response_model=ContributionResponse, status_code=201)
def record_contribution(
    group_id: str,
    request_body: ContributionRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    try:
        group_uuid = uuid.UUID(group_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid group ID format")

    amount = Money(request_body.amount_cents, request_body.currency)
    with unit_of_work(services.db, get_request_id(request)):
        services.groups.record_contribution(group_uuid, request_body.customer_id, amount)
        pooled = services.groups.pooled_savings(group_uuid, request_body.currency)

    return ContributionResponse(
        group_id=group_id,
        customer_id=request_body.customer_id,
        amount_cents=amount.amount_cents,
        pooled_cents=pooled.amount_cents,
        currency=request_body.currency,
    )
