"""Booking link endpoints"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import actor_from, get_tenant_context, require_role
from app.database import get_db
from app.models.booking_link import BookingLinkStatus, BookingLinkToken
from app.schemas.auth import TokenPayload, UserRole
from app.schemas.booking_link import (
    BookingLinkCreate,
    BookingLinkResponse,
    ResolvedBookingLinkResponse,
)
from app.services.audit import write_audit_log
from app.services.booking_links import BookingLinkService, booking_url
from app.services.context import TenantContext

router = APIRouter()
public_router = APIRouter()


def _to_response(link: BookingLinkToken) -> BookingLinkResponse:
    response = BookingLinkResponse.model_validate(link)
    response.url = booking_url(link.token)
    return response


@router.get("", response_model=List[BookingLinkResponse])
async def list_booking_links(
    status: Optional[BookingLinkStatus] = Query(None),
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.MANAGER)),
    db: AsyncSession = Depends(get_db),
):
    """List booking links, newest first"""
    links = await BookingLinkService(db).list(ctx, status.value if status else None)
    return [_to_response(link) for link in links]


@router.post("", response_model=BookingLinkResponse, status_code=201)
async def create_booking_link(
    request: Request,
    link_data: BookingLinkCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.MANAGER)),
    db: AsyncSession = Depends(get_db),
):
    """Issue a booking link for a practitioner"""
    link = await BookingLinkService(db).create(
        ctx,
        practitioner_id=link_data.practitioner_id,
        created_by=current_user.sub,
        store_id=link_data.store_id,
        expires_at=link_data.expires_at,
        reissue=link_data.reissue,
        allow_multiple=link_data.allow_multiple,
    )
    await write_audit_log(
        db, ctx, actor_from(request, current_user), "create", "booking_link", link.id,
        after={"practitioner_id": str(link.practitioner_id), "reissue": link_data.reissue},
    )
    return _to_response(link)


@router.delete("/{link_id}", response_model=BookingLinkResponse)
async def revoke_booking_link(
    request: Request,
    link_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    current_user: TokenPayload = Depends(require_role(UserRole.MANAGER)),
    db: AsyncSession = Depends(get_db),
):
    """Revoke a booking link"""
    link = await BookingLinkService(db).revoke(ctx, link_id)
    await write_audit_log(
        db, ctx, actor_from(request, current_user), "revoke", "booking_link", link.id,
        after={"status": link.status},
    )
    return _to_response(link)


@public_router.get("/{token}", response_model=ResolvedBookingLinkResponse)
async def resolve_booking_link(
    token: str,
    db: AsyncSession = Depends(get_db),
):
    """Public entry point of a booking link"""
    return await BookingLinkService(db).resolve(token)
