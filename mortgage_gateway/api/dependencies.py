"""Dependency injection for FastAPI endpoints"""

from functools import lru_cache
from typing import Callable

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from mortgage_gateway.config import settings
from mortgage_gateway.domain.engine import LoanEngine
from mortgage_gateway.domain.events import WILDCARD, EventPublisher
from mortgage_gateway.domain.locking import LoanLocks
from mortgage_gateway.domain.ports import CustodyAdapter
from mortgage_gateway.domain.registry import ParameterRegistry
from mortgage_gateway.infrastructure.clients.custody import HttpCustodyClient
from mortgage_gateway.infrastructure.clients.memory_custody import InMemoryCustody
from mortgage_gateway.infrastructure.database.repositories import LoanRepository
from mortgage_gateway.infrastructure.database.session import get_db
from mortgage_gateway.infrastructure.observability.logging import log_loan_event
from mortgage_gateway.infrastructure.observability.metrics import record_loan_event
from mortgage_gateway.utils.time_utils import unix_now

# Shared by every request so operations on one loan are serialized process-wide
loan_locks = LoanLocks()


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_caller(x_caller_identity: str = Header(..., min_length=1)) -> str:
    """Authenticated identity of the direct caller, set by the upstream auth proxy"""
    return x_caller_identity


@lru_cache
def get_registry() -> ParameterRegistry:
    """Provide the process-wide parameter registry"""
    return ParameterRegistry(admin=settings.admin_identity, originators=settings.authorized_originators)


@lru_cache
def get_custody() -> CustodyAdapter:
    """Provide the custody adapter selected by configuration"""
    if settings.custody_backend == "http":
        return HttpCustodyClient()
    return InMemoryCustody(assume_external_holdings=True)


@lru_cache
def get_publisher() -> EventPublisher:
    """Provide the lifecycle event publisher with logging and metrics subscribers"""
    publisher = EventPublisher()
    publisher.subscribe(WILDCARD, log_loan_event)
    publisher.subscribe(WILDCARD, record_loan_event)
    return publisher


def get_clock() -> Callable[[], int]:
    """Provide the time source used for loan start and default deadlines"""
    return unix_now


def get_loan_repository(db: Session = Depends(get_db)) -> LoanRepository:
    return LoanRepository(db)


def get_engine(
    repository: LoanRepository = Depends(get_loan_repository),
    registry: ParameterRegistry = Depends(get_registry),
    custody: CustodyAdapter = Depends(get_custody),
    publisher: EventPublisher = Depends(get_publisher),
    clock: Callable[[], int] = Depends(get_clock),
) -> LoanEngine:
    """Provide a loan engine bound to the request's database session"""
    return LoanEngine(
        registry=registry,
        custody=custody,
        store=repository,
        locks=loan_locks,
        publisher=publisher,
        clock=clock,
    )
