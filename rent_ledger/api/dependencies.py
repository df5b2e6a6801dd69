"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from rent_ledger.infrastructure.database.repositories import SqlLedgerStore
from rent_ledger.infrastructure.database.session import get_db


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_ledger_store(db: Session = Depends(get_db)) -> SqlLedgerStore:
    """Provide the SQL-backed ledger store for this request"""
    return SqlLedgerStore(db)
