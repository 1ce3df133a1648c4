"""Tests for booking-link issuing and resolution"""

from datetime import timedelta
from uuid import uuid4

import pytest

from app.database import utcnow
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.tenant import Store
from app.services.booking_links import BookingLinkService, booking_url, is_well_formed_token
from app.services.context import TenantContext


@pytest.fixture
def links(test_db):
    return BookingLinkService(test_db)


@pytest.fixture
def ids(test_tenant, test_store, test_practitioner, other_practitioner):
    """Plain ids, safe to use after a rolled back request"""
    return {
        "tenant": test_tenant.id,
        "store": test_store.id,
        "practitioner": test_practitioner.id,
        "other_practitioner": other_practitioner.id,
    }


class TestIssue:
    async def test_create_issues_active_url_safe_token(self, links, ctx, ids):
        link = await links.create(ctx, ids["practitioner"], created_by="owner-1")

        assert link.status == "active"
        assert link.store_id is None
        assert is_well_formed_token(link.token)
        assert booking_url(link.token).endswith("/" + link.token)

    async def test_reissue_revokes_previous_link(self, test_db, links, ctx, ids):
        first = await links.create(ctx, ids["practitioner"], created_by="owner-1")
        second = await links.create(ctx, ids["practitioner"], created_by="owner-1")

        await test_db.refresh(first)
        assert first.status == "revoked"
        assert second.status == "active"
        assert second.token != first.token

        active = await links.list(ctx, status="active")
        assert [link.id for link in active] == [second.id]

    async def test_reissue_only_touches_the_same_scope(self, test_db, links, ctx, ids):
        unscoped = await links.create(ctx, ids["practitioner"], created_by="owner-1")
        scoped = await links.create(ctx, ids["practitioner"], created_by="owner-1", store_id=ids["store"])
        other = await links.create(ctx, ids["other_practitioner"], created_by="owner-1")

        for link in (unscoped, scoped, other):
            await test_db.refresh(link)
            assert link.status == "active"

    async def test_existing_link_blocks_non_reissue(self, links, ctx, ids):
        await links.create(ctx, ids["practitioner"], created_by="owner-1")

        with pytest.raises(ConflictError):
            await links.create(ctx, ids["practitioner"], created_by="owner-1", reissue=False)

        await links.create(
            ctx, ids["practitioner"], created_by="owner-1", reissue=False, allow_multiple=True
        )
        assert len(await links.list(ctx, status="active")) == 2

    async def test_unknown_or_inactive_practitioner(self, test_db, links, ctx, test_practitioner):
        practitioner_id = test_practitioner.id
        test_practitioner.is_active = False
        await test_db.commit()

        with pytest.raises(NotFoundError):
            await links.create(ctx, practitioner_id, created_by="owner-1")
        with pytest.raises(NotFoundError):
            await links.create(ctx, uuid4(), created_by="owner-1")

    async def test_store_must_be_active(self, test_db, links, ctx, ids, test_store):
        test_store.status = "inactive"
        await test_db.commit()

        with pytest.raises(NotFoundError):
            await links.create(ctx, ids["practitioner"], created_by="owner-1", store_id=ids["store"])

    async def test_practitioner_must_work_at_store(self, test_db, links, ctx, ids):
        annex = Store(id=uuid4(), tenant_id=ids["tenant"], name="Annex", status="active")
        test_db.add(annex)
        await test_db.commit()
        annex_id = annex.id

        with pytest.raises(ConflictError):
            await links.create(ctx, ids["practitioner"], created_by="owner-1", store_id=annex_id)

        # Practitioners without store assignments work everywhere
        link = await links.create(ctx, ids["other_practitioner"], created_by="owner-1", store_id=annex_id)
        assert link.store_id == annex_id

    async def test_expiry_must_be_in_the_future(self, links, ctx, ids):
        with pytest.raises(ValidationError):
            await links.create(
                ctx, ids["practitioner"], created_by="owner-1",
                expires_at=utcnow() - timedelta(minutes=1),
            )

    async def test_revoke_is_tenant_scoped(self, links, ctx, ids):
        link = await links.create(ctx, ids["practitioner"], created_by="owner-1")

        with pytest.raises(NotFoundError):
            await links.revoke(TenantContext(tenant_id=uuid4()), link.id)

        revoked = await links.revoke(ctx, link.id)
        assert revoked.status == "revoked"


class TestResolve:
    async def test_resolves_tenant_and_practitioner(self, test_db, links, ctx, ids):
        link = await links.create(ctx, ids["practitioner"], created_by="owner-1", store_id=ids["store"])

        resolved = await links.resolve(link.token)

        assert resolved.tenant_id == ids["tenant"]
        assert resolved.tenant_key == "test-salon"
        assert resolved.practitioner_id == ids["practitioner"]
        assert resolved.store_id == ids["store"]
        assert resolved.line_mode == "tenant"
        assert resolved.line_config_source == "tenant"

        await test_db.refresh(link)
        assert link.last_used_at is not None

    async def test_store_line_config_is_reported(self, test_db, links, ctx, ids, test_tenant, test_store):
        test_tenant.line_config = {"mode": "store", "liff_id": "tenant-liff"}
        test_store.line_config = {"liff_id": "store-liff"}
        await test_db.commit()
        link = await links.create(ctx, ids["practitioner"], created_by="owner-1", store_id=ids["store"])

        resolved = await links.resolve(link.token)

        assert resolved.line_mode == "store"
        assert resolved.line_config_source == "store"

    @pytest.mark.parametrize("token", ["", "short", "has spaces in the token!", "x" * 129])
    async def test_malformed_token(self, links, token):
        with pytest.raises(NotFoundError):
            await links.resolve(token)

    async def test_unknown_token(self, links):
        with pytest.raises(NotFoundError):
            await links.resolve("A" * 32)

    async def test_revoked_token(self, links, ctx, ids):
        link = await links.create(ctx, ids["practitioner"], created_by="owner-1")
        await links.revoke(ctx, link.id)

        with pytest.raises(NotFoundError):
            await links.resolve(link.token)

    async def test_expired_token(self, test_db, links, ctx, ids):
        link = await links.create(
            ctx, ids["practitioner"], created_by="owner-1",
            expires_at=utcnow() + timedelta(days=1),
        )
        await links.resolve(link.token)

        link.expires_at = utcnow() - timedelta(seconds=1)
        await test_db.commit()
        with pytest.raises(NotFoundError):
            await links.resolve(link.token)

    @pytest.mark.parametrize("status, usable", [("trial", True), ("suspended", False), ("canceled", False)])
    async def test_tenant_status(self, test_db, links, ctx, ids, test_tenant, status, usable):
        link = await links.create(ctx, ids["practitioner"], created_by="owner-1")
        token = link.token
        test_tenant.status = status
        await test_db.commit()

        if usable:
            assert (await links.resolve(token)).tenant_id == ids["tenant"]
        else:
            with pytest.raises(NotFoundError):
                await links.resolve(token)

    async def test_inactive_practitioner(self, test_db, links, ctx, ids, test_practitioner):
        link = await links.create(ctx, ids["practitioner"], created_by="owner-1")
        test_practitioner.is_active = False
        await test_db.commit()

        with pytest.raises(NotFoundError):
            await links.resolve(link.token)

    async def test_inactive_store(self, test_db, links, ctx, ids, test_store):
        link = await links.create(ctx, ids["practitioner"], created_by="owner-1", store_id=ids["store"])
        test_store.status = "inactive"
        await test_db.commit()

        with pytest.raises(NotFoundError):
            await links.resolve(link.token)
