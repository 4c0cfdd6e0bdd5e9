"""POST /v1/eligibility and GET /v1/products/individual-term/options"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from microcredit_engine.api.dependencies import get_request_id, get_services
from microcredit_engine.api.v1.errors import unit_of_work
from microcredit_engine.api.v1.schemas import EligibilityResponse, MaturityOptionsResponse, ProductRequest, TermsSchema
from microcredit_engine.domain.exceptions import InvalidAmountError
from microcredit_engine.domain.models import Currency, Money, ProductType
from microcredit_engine.domain.products.registry import get_rules
from microcredit_engine.services.container import ServiceContainer

router = APIRouter()


@router.post("/eligibility", response_model=EligibilityResponse)
def check_eligibility(
    request_body: ProductRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    """
    Check a customer against every rule of a product.

    Returns all unmet conditions at once. An eligible request also gets the
    quote it would be priced at.
    """
    with unit_of_work(services.db, get_request_id(request)):
        result = services.credits.check_product_eligibility(
            request_body.customer_id,
            request_body.product_type,
            request_body.money(),
            request_body.product_args(),
        )
        terms = None
        if result.eligible:
            rules = get_rules(request_body.product_type)
            terms = TermsSchema.from_terms(rules.quote(request_body.money(), request_body.product_args()))

    return EligibilityResponse(eligible=result.eligible, reasons=result.reasons, terms=terms)


@router.get("/products/individual-term/options", response_model=MaturityOptionsResponse)
def get_maturity_options(amount_cents: int = Query(..., gt=0, description="Requested amount in minor units")):
    """Quotes for every allowed duration of an individual term credit"""
    rules = get_rules(ProductType.INDIVIDUAL_TERM)
    amount = Money(amount_cents, Currency.USD)
    try:
        options = [TermsSchema.from_terms(terms) for terms in rules.maturity_options(amount)]
    except InvalidAmountError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return MaturityOptionsResponse(amount_cents=amount_cents, currency=Currency.USD, options=options)
