"""
Company directory API endpoints and the live company stream.
"""
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import sessionmaker
from typing import List
from functools import partial

from ..config import settings
from ..database import get_session_factory
from ..schemas.company import CompanyCreate, CompanyResponse
from ..services.company_service import (
    CompanyService,
    company_event_stream,
    get_company_service,
    load_company_snapshot,
)

router = APIRouter(prefix="/api/companies", tags=["companies"])


@router.get("", response_model=List[CompanyResponse])
async def list_companies(service: CompanyService = Depends(get_company_service)):
    return [CompanyResponse.model_validate(company) for company in service.list_companies()]


@router.post("", response_model=CompanyResponse, status_code=status.HTTP_201_CREATED)
async def create_company(
    company_data: CompanyCreate,
    service: CompanyService = Depends(get_company_service),
):
    company = service.create_company(company_data.model_dump(by_alias=True))
    return CompanyResponse.model_validate(company)


@router.get("/stream")
async def stream_companies(
    request: Request,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Server-sent events with the full company list.

    A snapshot is sent on connect and every few seconds after; a
    ``: keep-alive`` comment keeps idle proxies from closing the connection.
    """
    events = company_event_stream(
        partial(load_company_snapshot, session_factory),
        request.is_disconnected,
        interval_seconds=settings.COMPANY_STREAM_INTERVAL_SECONDS,
        heartbeat_seconds=settings.STREAM_HEARTBEAT_SECONDS,
    )
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/{company_id}", response_model=CompanyResponse)
async def get_company(
    company_id: str,
    service: CompanyService = Depends(get_company_service),
):
    return CompanyResponse.model_validate(service.get_company(company_id))
