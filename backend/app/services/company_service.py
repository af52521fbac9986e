"""
Company directory service.
"""
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional
import asyncio
import json
import logging

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.database import get_db
from app.models.company import Company
from app.utils.errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

HEARTBEAT = ": keep-alive\n\n"


class CompanyService:
    """Minimal company records referenced from tasks."""

    def __init__(self, db: Session):
        self.db = db

    def list_companies(self) -> List[Company]:
        return self.db.query(Company).order_by(Company.name.asc()).all()

    def snapshot(self) -> List[Dict[str, Any]]:
        """All companies as plain dicts."""
        return [company.to_dict() for company in self.list_companies()]

    def get_company(self, company_id: str) -> Company:
        company = self.db.get(Company, company_id) if company_id else None
        if company is None:
            raise NotFoundError("Company not found")
        return company

    def software_type_for(self, company_id: Optional[str]) -> str:
        """Software type of a task's company; N/A when unknown or lookup fails."""
        if not company_id:
            return "N/A"
        try:
            company = self.db.get(Company, str(company_id))
        except SQLAlchemyError as e:
            logger.warning("Company lookup failed for %s: %s", company_id, e)
            return "N/A"
        return company.software_type if company else "N/A"

    def create_company(self, data: Dict[str, Any]) -> Company:
        company = Company(
            name=data["name"],
            city=data.get("city"),
            address=data.get("address"),
            representative=data.get("representative"),
            support=data.get("support"),
            software_information=data.get("softwareInformation") or [],
        )
        try:
            self.db.add(company)
            self.db.commit()
            self.db.refresh(company)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("Failed to create company", error=str(e))
        return company


def get_company_service(db: Session = Depends(get_db)) -> CompanyService:
    return CompanyService(db)


def load_company_snapshot(session_factory: sessionmaker) -> List[Dict[str, Any]]:
    """Read all companies on a fresh session so each poll sees new commits."""
    with session_factory() as db:
        return CompanyService(db).snapshot()


def format_event(data: Any) -> str:
    return f"data: {json.dumps(data, default=str)}\n\n"


async def company_event_stream(
    load_companies: Callable[[], List[Dict[str, Any]]],
    is_disconnected: Callable[[], Awaitable[bool]],
    *,
    interval_seconds: float,
    heartbeat_seconds: float,
) -> AsyncIterator[str]:
    """
    Server-sent events: the full company list on connect and every
    ``interval_seconds`` after, with a comment line every ``heartbeat_seconds``.

    The stream ends when the client disconnects or the first read fails.
    """
    loop = asyncio.get_running_loop()
    try:
        companies = await asyncio.to_thread(load_companies)
    except SQLAlchemyError as e:
        logger.error("Error fetching initial companies: %s", e)
        return
    yield format_event(companies)

    next_poll = loop.time() + interval_seconds
    next_heartbeat = loop.time() + heartbeat_seconds
    while not await is_disconnected():
        now = loop.time()
        wake_at = min(next_poll, next_heartbeat)
        if wake_at > now:
            await asyncio.sleep(wake_at - now)
            continue

        if now >= next_poll:
            next_poll += interval_seconds
            try:
                companies = await asyncio.to_thread(load_companies)
            except SQLAlchemyError as e:
                logger.warning("Company poll failed: %s", e)
            else:
                yield format_event(companies)

        if now >= next_heartbeat:
            next_heartbeat += heartbeat_seconds
            yield HEARTBEAT

    logger.info("Company stream client disconnected")
