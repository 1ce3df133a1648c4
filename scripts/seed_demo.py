#!/usr/bin/env python3
"""
Seed script to create a demo salon with staff, menus and a booking link
"""

import asyncio
import uuid

from app.api.auth import create_access_token
from app.schemas.auth import UserRole


async def seed_demo_data():
    """Seed demo data for development"""
    from sqlalchemy import select

    from app.database import SessionLocal, engine, Base
    from app.models.tenant import Tenant, Store, Practitioner, Customer
    from app.models.menu import Menu, MenuOption
    from app.services.booking_links import BookingLinkService, booking_url
    from app.services.context import TenantContext

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        # Check if demo tenant already exists
        result = await db.execute(select(Tenant).where(Tenant.slug == "demo-salon"))
        existing = result.scalar_one_or_none()

        if existing:
            print("Demo data already exists. Skipping...")
            return

        print("Creating demo tenant...")

        tenant = Tenant(
            id=uuid.uuid4(),
            name="Demo Hair Salon",
            slug="demo-salon",
            status="active",
            line_config={"mode": "store", "liff_id": "0000000000-demo", "channel_id": "1650000000"},
        )
        db.add(tenant)
        await db.flush()

        print(f"Created tenant: {tenant.name} (ID: {tenant.id})")

        store = Store(
            id=uuid.uuid4(),
            tenant_id=tenant.id,
            name="Shibuya",
            status="active",
            timezone="Asia/Tokyo",
            slot_duration=30,
            advance_booking_days=60,
            cancel_deadline_hours=24,
            line_config={"liff_id": "0000000000-shibuya"},
        )
        db.add(store)

        practitioners = [
            Practitioner(tenant_id=tenant.id, name="Sato", nomination_fee=550, store_ids=[str(store.id)]),
            Practitioner(tenant_id=tenant.id, name="Suzuki", nomination_fee=0, store_ids=[]),
        ]
        for practitioner in practitioners:
            db.add(practitioner)

        menus_data = [
            {"name": "Cut", "category": "Cut", "price": 5500, "duration": 60},
            {"name": "Color", "category": "Color", "price": 8800, "duration": 90},
            {"name": "Perm", "category": "Perm", "price": 11000, "duration": 120},
            {"name": "Head Spa", "category": "Spa", "price": 4400, "duration": 30},
        ]
        for index, menu_data in enumerate(menus_data):
            db.add(Menu(tenant_id=tenant.id, sort_order=index, **menu_data))

        db.add(MenuOption(tenant_id=tenant.id, name="Treatment", price=2200, duration=15))
        db.add(MenuOption(tenant_id=tenant.id, name="Shampoo", price=1100, duration=10))

        customer = Customer(tenant_id=tenant.id, name="Tanaka Hanako", phone="09000000000")
        db.add(customer)

        await db.commit()

        link = await BookingLinkService(db).create(
            TenantContext(tenant_id=tenant.id),
            practitioner_id=practitioners[0].id,
            store_id=store.id,
            created_by="seed",
        )

        owner_token = create_access_token("demo-owner", UserRole.OWNER, tenant_id=tenant.id, name="Owner")
        customer_token = create_access_token(str(customer.id), UserRole.CUSTOMER, tenant_id=tenant.id)

        print(f"""
Demo data created successfully!

Tenant: {tenant.name}
  ID: {tenant.id}
  Store: {store.name} ({store.id})

Practitioners: {", ".join(p.name for p in practitioners)}
Menus: {len(menus_data)} items created

Booking link for {practitioners[0].name}:
  {booking_url(link.token)}

Development tokens:
  Owner:    {owner_token}
  Customer: {customer_token}
""")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
