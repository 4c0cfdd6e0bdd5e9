"""POST /v1/jobs/* - run a scheduled pass on demand"""

import logging
from datetime import date
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from microcredit_engine.api.dependencies import get_request_id
from microcredit_engine.api.v1.schemas import PassReportResponse
from microcredit_engine.domain.models import PassReport
from microcredit_engine.infrastructure.database.session import get_db
from microcredit_engine.services.passes import (
    run_due_reminder_pass,
    run_eligibility_refresh_pass,
    run_renewal_pass,
    run_settlement_pass,
    run_weekly_reminder_pass,
)

logger = logging.getLogger(__name__)

router = APIRouter()

PASSES = {
    "settlement": run_settlement_pass,
    "renewal": run_renewal_pass,
    "weekly-reminders": run_weekly_reminder_pass,
    "due-reminders": run_due_reminder_pass,
    "eligibility-refresh": run_eligibility_refresh_pass,
}


@router.post("/jobs/{job_name}", response_model=PassReportResponse)
def run_job(
    job_name: str,
    request: Request,
    as_of: Optional[date] = Query(None, description="Business date, defaults to today"),
    db: Session = Depends(get_db),
):
    """
    Run one pass synchronously.

    Passes commit per item, so a failing credit or customer is reported in the
    summary instead of failing the request.
    """
    run_pass: Optional[Callable[[Session, Optional[date]], PassReport]] = PASSES.get(job_name)
    if run_pass is None:
        raise HTTPException(status_code=404, detail=f"Unknown job: {job_name}")

    try:
        report = run_pass(db, as_of)
    except Exception:
        db.rollback()
        logger.exception("Job failed", extra={"job_name": job_name, "request_id": get_request_id(request)})
        raise HTTPException(status_code=500, detail="Internal server error")

    return PassReportResponse(
        name=report.name,
        business_date=report.business_date,
        examined=report.examined,
        processed=report.processed,
        skipped=report.skipped,
        failed=report.failed,
    )
