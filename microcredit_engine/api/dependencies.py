"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from microcredit_engine.infrastructure.database.session import get_db
from microcredit_engine.services.container import ServiceContainer


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_services(db: Session = Depends(get_db)) -> ServiceContainer:
    """Services bound to the request's session, on today's business date"""
    return ServiceContainer(db)
