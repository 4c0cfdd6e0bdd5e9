"""Unit-of-work wrapper mapping domain errors to HTTP responses"""

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException
from sqlalchemy.orm import Session

from microcredit_engine.domain.exceptions import (
    AccountInactiveError,
    CurrencyMismatchError,
    GroupMembershipError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidStateTransitionError,
    NotFoundError,
    OverpaymentError,
    SponsorCapacityError,
)

logger = logging.getLogger(__name__)

CONFLICT_ERRORS = (
    InvalidStateTransitionError,
    InsufficientBalanceError,
    SponsorCapacityError,
    AccountInactiveError,
    OverpaymentError,
    CurrencyMismatchError,
)
UNPROCESSABLE_ERRORS = (InvalidAmountError, GroupMembershipError)


@contextmanager
def unit_of_work(db: Session, request_id: str) -> Iterator[None]:
    """
    Commit the session when the block succeeds, roll it back on any error.

    404 for unknown entities, 409 for broken invariants, 422 for invalid
    amounts and group rules. Anything else is logged and surfaces as a
    generic 500.
    """
    try:
        yield
        db.commit()

    except HTTPException:
        db.rollback()
        raise

    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except CONFLICT_ERRORS as e:
        db.rollback()
        logger.warning(f"Rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))

    except UNPROCESSABLE_ERRORS as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(e))

    except Exception as e:
        db.rollback()
        logger.exception(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")
