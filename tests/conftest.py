"""Test configuration and fixtures"""

from datetime import date, time
from typing import Optional
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.main import app
from app.database import Base, get_db
from app.models.tenant import Tenant, Store, Practitioner, Customer
from app.models.menu import Menu, MenuOption
from app.api.auth import create_access_token
from app.schemas.auth import UserRole
from app.services.context import TenantContext
from app.services.reservation_store import ReservationDraft
from app.services.snapshots import ItemSelection, MenuSnapshot, OptionSnapshot


# Test database URL (use in-memory SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_db():
    """Create test database"""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_tenant(test_db):
    """Create a test tenant"""
    tenant = Tenant(
        id=uuid4(),
        name="Test Salon",
        slug="test-salon",
        status="active",
        line_config={"mode": "tenant", "liff_id": "tenant-liff", "channel_id": "tenant-channel"},
    )
    test_db.add(tenant)
    await test_db.commit()
    return tenant


@pytest.fixture
async def test_store(test_db, test_tenant):
    """Store in Asia/Tokyo with the usual policy"""
    store = Store(
        id=uuid4(),
        tenant_id=test_tenant.id,
        name="Shibuya",
        status="active",
        timezone="Asia/Tokyo",
        slot_duration=30,
        advance_booking_days=30,
        cancel_deadline_hours=24,
    )
    test_db.add(store)
    await test_db.commit()
    return store


@pytest.fixture
async def test_practitioner(test_db, test_tenant, test_store):
    practitioner = Practitioner(
        id=uuid4(),
        tenant_id=test_tenant.id,
        name="Sato",
        is_active=True,
        nomination_fee=550,
        store_ids=[str(test_store.id)],
    )
    test_db.add(practitioner)
    await test_db.commit()
    return practitioner


@pytest.fixture
async def other_practitioner(test_db, test_tenant):
    practitioner = Practitioner(
        id=uuid4(),
        tenant_id=test_tenant.id,
        name="Suzuki",
        is_active=True,
        nomination_fee=0,
        store_ids=[],
    )
    test_db.add(practitioner)
    await test_db.commit()
    return practitioner


@pytest.fixture
async def test_customer(test_db, test_tenant):
    customer = Customer(id=uuid4(), tenant_id=test_tenant.id, name="Tanaka", phone="09000000000")
    test_db.add(customer)
    await test_db.commit()
    return customer


@pytest.fixture
async def test_menus(test_db, test_tenant):
    """Cut (5,500 / 60min), Color (8,800 / 90min) and an inactive menu"""
    menus = [
        Menu(id=uuid4(), tenant_id=test_tenant.id, name="Cut", price=5500, duration=60, sort_order=0),
        Menu(id=uuid4(), tenant_id=test_tenant.id, name="Color", price=8800, duration=90, sort_order=1),
        Menu(
            id=uuid4(),
            tenant_id=test_tenant.id,
            name="Retired Perm",
            price=9900,
            duration=120,
            sort_order=2,
            is_active=False,
        ),
    ]
    for menu in menus:
        test_db.add(menu)
    await test_db.commit()
    return menus


@pytest.fixture
async def test_option(test_db, test_tenant):
    option = MenuOption(id=uuid4(), tenant_id=test_tenant.id, name="Treatment", price=2200, duration=15)
    test_db.add(option)
    await test_db.commit()
    return option


@pytest.fixture
def ctx(test_tenant):
    return TenantContext(tenant_id=test_tenant.id)


def cut_selection(menu: Menu, option: Optional[MenuOption] = None) -> ItemSelection:
    """Selection frozen from catalog rows, as the snapshot resolver would build it"""
    options = ()
    if option is not None:
        options = (OptionSnapshot(option.id, option.name, option.price, option.duration),)
    return ItemSelection(
        menus=(MenuSnapshot(menu.id, menu.name, menu.price, menu.duration, 0, True),),
        options=options,
    )


@pytest.fixture
def selection():
    return cut_selection


@pytest.fixture
def make_draft(test_practitioner, test_customer, test_store, test_menus):
    """Factory for reservation drafts on 2026-02-10 with the Cut menu"""
    # Read everything up front; a rolled back session expires the fixture rows
    defaults = dict(
        practitioner_id=test_practitioner.id,
        practitioner_name=test_practitioner.name,
        customer_id=test_customer.id,
        customer_name=test_customer.name,
        customer_phone=test_customer.phone,
        store_id=test_store.id,
    )
    cut = cut_selection(test_menus[0])

    def factory(
        start: str = "10:00",
        end: str = "11:00",
        day: date = date(2026, 2, 10),
        practitioner_id: Optional[UUID] = None,
        items: Optional[ItemSelection] = None,
        **kwargs,
    ) -> ReservationDraft:
        values = {**defaults, **kwargs}
        if practitioner_id is not None:
            values["practitioner_id"] = practitioner_id
        return ReservationDraft(
            date=day,
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
            items=items or cut,
            **values,
        )
    return factory


def auth_headers(role: UserRole, tenant_id: Optional[UUID], subject: Optional[str] = None) -> dict:
    token = create_access_token(subject or str(uuid4()), role, tenant_id=tenant_id, name=role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_headers():
    return auth_headers


@pytest.fixture
def staff_headers(test_tenant):
    return auth_headers(UserRole.STAFF, test_tenant.id)


@pytest.fixture
def manager_headers(test_tenant):
    return auth_headers(UserRole.MANAGER, test_tenant.id)


@pytest.fixture
def customer_headers(test_tenant, test_customer):
    return auth_headers(UserRole.CUSTOMER, test_tenant.id, str(test_customer.id))


@pytest.fixture
async def client(test_db):
    """Create test client with overridden database"""
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
