"""
Booking-link tokens.

A booking link is an opaque URL-safe token that takes a customer straight to
one practitioner's booking page. Issuing a link revokes the practitioner's
previous active links for the same store scope unless told otherwise.
"""

import re
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import utcnow
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.booking_link import BookingLinkStatus, BookingLinkToken
from app.models.tenant import Practitioner, Store, Tenant
from app.services.context import TenantContext
from app.services.line_config import resolve_line_config
from app.services.locks import KeyedLocks, advisory_xact_lock, is_postgresql

logger = structlog.get_logger()

TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{16,128}$")
TOKEN_GENERATION_ATTEMPTS = 10
BOOKABLE_TENANT_STATUSES = ("active", "trial")

_issue_locks = KeyedLocks()


@dataclass
class ResolvedBookingLink:
    tenant_id: UUID
    tenant_key: str
    practitioner_id: UUID
    line_mode: str
    line_config_source: str
    store_id: Optional[UUID] = None


def is_well_formed_token(token: str) -> bool:
    return bool(TOKEN_PATTERN.match(token))


def booking_url(token: str) -> str:
    return f"{settings.booking_link_base_url.rstrip('/')}/{token}"


class BookingLinkService:
    """Issue, list, revoke and resolve booking-link tokens"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self, ctx: TenantContext, status: Optional[str] = None) -> List[BookingLinkToken]:
        """Tenant's links, newest first"""
        stmt = select(BookingLinkToken).where(BookingLinkToken.tenant_id == ctx.tenant_id)
        if status:
            stmt = stmt.where(BookingLinkToken.status == status)
        stmt = stmt.order_by(BookingLinkToken.created_at.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _active_practitioner(self, ctx: TenantContext, practitioner_id: UUID) -> Practitioner:
        result = await self.db.execute(
            select(Practitioner).where(
                Practitioner.tenant_id == ctx.tenant_id,
                Practitioner.id == practitioner_id,
            )
        )
        practitioner = result.scalar_one_or_none()
        if practitioner is None or not practitioner.is_active:
            raise NotFoundError("Practitioner", practitioner_id)
        return practitioner

    async def _active_store(self, ctx: TenantContext, store_id: UUID) -> Store:
        result = await self.db.execute(
            select(Store).where(Store.tenant_id == ctx.tenant_id, Store.id == store_id)
        )
        store = result.scalar_one_or_none()
        if store is None or store.status != "active":
            raise NotFoundError("Store", store_id)
        return store

    async def _generate_unique_token(self) -> str:
        for _ in range(TOKEN_GENERATION_ATTEMPTS):
            candidate = secrets.token_urlsafe(settings.booking_link_token_bytes)
            result = await self.db.execute(
                select(BookingLinkToken.id).where(BookingLinkToken.token == candidate).limit(1)
            )
            if result.scalar_one_or_none() is None:
                return candidate
        raise RuntimeError("Could not generate a unique booking link token")

    def _same_scope(self, ctx: TenantContext, practitioner_id: UUID, store_id: Optional[UUID]):
        scope = [
            BookingLinkToken.tenant_id == ctx.tenant_id,
            BookingLinkToken.practitioner_id == practitioner_id,
            BookingLinkToken.status == BookingLinkStatus.ACTIVE.value,
        ]
        if store_id is None:
            scope.append(BookingLinkToken.store_id.is_(None))
        else:
            scope.append(BookingLinkToken.store_id == store_id)
        return scope

    @asynccontextmanager
    async def _scope_lock(self, key: str):
        """Serialize issuers of one link scope until the surrounding transaction ends"""
        if is_postgresql(self.db):
            await advisory_xact_lock(self.db, key)
            yield
        else:
            async with _issue_locks.hold(key):
                yield

    async def create(
        self,
        ctx: TenantContext,
        practitioner_id: UUID,
        created_by: str,
        store_id: Optional[UUID] = None,
        expires_at: Optional[datetime] = None,
        reissue: bool = True,
        allow_multiple: bool = False,
    ) -> BookingLinkToken:
        """Issue a new link; ``reissue`` revokes the scope's active links atomically"""
        if expires_at is not None and expires_at <= utcnow():
            raise ValidationError("expires_at must be in the future", {"expires_at": expires_at.isoformat()})

        scope_key = f"booking_link:{ctx.tenant_id}:{practitioner_id}:{store_id or '-'}"
        try:
            async with self._scope_lock(scope_key):
                practitioner = await self._active_practitioner(ctx, practitioner_id)
                if store_id is not None:
                    await self._active_store(ctx, store_id)
                    if not practitioner.works_at(store_id):
                        raise ConflictError(
                            "Practitioner is not assigned to the selected store",
                            {"practitioner_id": str(practitioner_id), "store_id": str(store_id)},
                        )

                scope = self._same_scope(ctx, practitioner_id, store_id)
                if reissue:
                    revoked = await self.db.execute(
                        update(BookingLinkToken)
                        .where(*scope)
                        .values(status=BookingLinkStatus.REVOKED.value)
                        .execution_options(synchronize_session="fetch")
                    )
                    if revoked.rowcount:
                        logger.info(
                            "booking_link.reissued",
                            tenant_id=str(ctx.tenant_id),
                            practitioner_id=str(practitioner_id),
                            revoked=revoked.rowcount,
                        )
                elif not allow_multiple:
                    existing = await self.db.execute(select(BookingLinkToken.id).where(*scope).limit(1))
                    if existing.scalar_one_or_none() is not None:
                        raise ConflictError(
                            "An active booking link already exists for this practitioner",
                            {"practitioner_id": str(practitioner_id)},
                        )

                link = BookingLinkToken(
                    tenant_id=ctx.tenant_id,
                    store_id=store_id,
                    practitioner_id=practitioner_id,
                    token=await self._generate_unique_token(),
                    status=BookingLinkStatus.ACTIVE.value,
                    created_by=created_by,
                    expires_at=expires_at,
                )
                self.db.add(link)
                await self.db.commit()
        except BaseException:
            await self.db.rollback()
            raise

        logger.info(
            "booking_link.created",
            tenant_id=str(ctx.tenant_id),
            booking_link_id=str(link.id),
            practitioner_id=str(practitioner_id),
        )
        return link

    async def revoke(self, ctx: TenantContext, link_id: UUID) -> BookingLinkToken:
        result = await self.db.execute(
            select(BookingLinkToken).where(
                BookingLinkToken.tenant_id == ctx.tenant_id,
                BookingLinkToken.id == link_id,
            )
        )
        link = result.scalar_one_or_none()
        if link is None:
            raise NotFoundError("Booking link", link_id)

        link.status = BookingLinkStatus.REVOKED.value
        await self.db.commit()
        logger.info("booking_link.revoked", tenant_id=str(ctx.tenant_id), booking_link_id=str(link_id))
        return link

    async def resolve(self, token: str) -> ResolvedBookingLink:
        """Resolve a public token; any unusable link is reported as not found"""
        token = (token or "").strip()
        if not is_well_formed_token(token):
            raise NotFoundError("Booking link")

        now = utcnow()
        result = await self.db.execute(
            select(BookingLinkToken).where(
                BookingLinkToken.token == token,
                BookingLinkToken.status == BookingLinkStatus.ACTIVE.value,
                or_(BookingLinkToken.expires_at.is_(None), BookingLinkToken.expires_at > now),
            )
        )
        link = result.scalar_one_or_none()
        if link is None:
            raise NotFoundError("Booking link")

        tenant = await self.db.get(Tenant, link.tenant_id)
        if tenant is None or tenant.status not in BOOKABLE_TENANT_STATUSES:
            raise NotFoundError("Booking link")

        ctx = TenantContext(tenant_id=tenant.id, store_id=link.store_id)
        practitioner = (
            await self.db.execute(
                select(Practitioner).where(
                    Practitioner.tenant_id == ctx.tenant_id,
                    Practitioner.id == link.practitioner_id,
                )
            )
        ).scalar_one_or_none()
        if practitioner is None or not practitioner.is_active:
            raise NotFoundError("Booking link")

        store = None
        if link.store_id is not None:
            store = (
                await self.db.execute(
                    select(Store).where(Store.tenant_id == ctx.tenant_id, Store.id == link.store_id)
                )
            ).scalar_one_or_none()
            if store is None or store.status != "active":
                raise NotFoundError("Booking link")

        line = resolve_line_config(tenant, store, practitioner)
        resolved = ResolvedBookingLink(
            tenant_id=tenant.id,
            tenant_key=tenant.slug,
            store_id=store.id if store is not None else None,
            practitioner_id=practitioner.id,
            line_mode=line.mode,
            line_config_source=line.source,
        )

        await self._touch(link.id)
        return resolved

    async def _touch(self, link_id: UUID) -> None:
        try:
            await self.db.execute(
                update(BookingLinkToken)
                .where(BookingLinkToken.id == link_id)
                .values(last_used_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("booking_link.touch_failed", booking_link_id=str(link_id), error=str(e))
