"""
Item snapshot resolution.

Turns menu/option ids into immutable priced line items. The snapshot is a
copy of the catalog at booking time; later catalog edits never reach an
existing reservation.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError
from app.models.menu import Menu, MenuOption
from app.services.context import TenantContext


@dataclass(frozen=True)
class MenuSnapshot:
    menu_id: UUID
    name: str
    price: int
    duration: int
    sort_order: int
    is_main: bool


@dataclass(frozen=True)
class OptionSnapshot:
    option_id: UUID
    name: str
    price: int
    duration: int


@dataclass(frozen=True)
class ItemSelection:
    """Frozen menu and option lines of one booking"""
    menus: Tuple[MenuSnapshot, ...]
    options: Tuple[OptionSnapshot, ...] = ()

    @property
    def subtotal(self) -> int:
        return sum(m.price for m in self.menus)

    @property
    def option_total(self) -> int:
        return sum(o.price for o in self.options)

    @property
    def duration(self) -> int:
        return sum(m.duration for m in self.menus) + sum(o.duration for o in self.options)


async def _load_by_ids(db: AsyncSession, model, ctx: TenantContext, ids: Sequence[UUID]) -> dict:
    if not ids:
        return {}
    result = await db.execute(
        select(model).where(
            model.tenant_id == ctx.tenant_id,
            model.id.in_(set(ids)),
        )
    )
    return {row.id: row for row in result.scalars().all()}


async def resolve_menu_snapshots(
    db: AsyncSession,
    ctx: TenantContext,
    menu_ids: Sequence[UUID],
    include_inactive: bool = False,
) -> List[MenuSnapshot]:
    """Snapshot menus in the order given; the first one is the main menu"""
    found = await _load_by_ids(db, Menu, ctx, menu_ids)

    snapshots = []
    for index, menu_id in enumerate(menu_ids):
        menu = found.get(menu_id)
        if menu is None or (not menu.is_active and not include_inactive):
            raise NotFoundError("Menu", menu_id)
        snapshots.append(
            MenuSnapshot(
                menu_id=menu.id,
                name=menu.name,
                price=menu.price,
                duration=menu.duration,
                sort_order=index,
                is_main=index == 0,
            )
        )
    return snapshots


async def resolve_option_snapshots(
    db: AsyncSession,
    ctx: TenantContext,
    option_ids: Sequence[UUID],
    include_inactive: bool = False,
) -> List[OptionSnapshot]:
    found = await _load_by_ids(db, MenuOption, ctx, option_ids)

    snapshots = []
    for option_id in option_ids:
        option = found.get(option_id)
        if option is None or (not option.is_active and not include_inactive):
            raise NotFoundError("Menu option", option_id)
        snapshots.append(
            OptionSnapshot(
                option_id=option.id,
                name=option.name,
                price=option.price,
                duration=option.duration or 0,
            )
        )
    return snapshots


async def resolve_selection(
    db: AsyncSession,
    ctx: TenantContext,
    menu_ids: Sequence[UUID],
    option_ids: Sequence[UUID] = (),
    include_inactive: bool = False,
) -> ItemSelection:
    """Resolve menus and options into one frozen selection"""
    menus = await resolve_menu_snapshots(db, ctx, menu_ids, include_inactive)
    options = await resolve_option_snapshots(db, ctx, option_ids, include_inactive)
    return ItemSelection(menus=tuple(menus), options=tuple(options))
