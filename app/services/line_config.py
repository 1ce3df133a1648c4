"""
LINE messaging configuration resolution.

A tenant chooses where its LINE channel lives through ``line_config.mode``:

* ``tenant``: one channel for the whole tenant
* ``store``: per-store channels, falling back to the tenant's
* ``practitioner``: per-practitioner channels, then store, then tenant

Fields are merged from the most specific level downward, so a store that only
overrides ``liff_id`` still inherits the tenant's channel credentials.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from app.models.tenant import Practitioner, Store, Tenant

LINE_FIELDS = ("liff_id", "channel_id", "channel_access_token", "channel_secret")
LINE_MODES = ("tenant", "store", "practitioner")


@dataclass
class ResolvedLineConfig:
    mode: str
    source: str
    config: Dict[str, Any] = field(default_factory=dict)
    store_id: Optional[UUID] = None
    practitioner_id: Optional[UUID] = None


def has_line_fields(config: Optional[Dict[str, Any]]) -> bool:
    if not config:
        return False
    return any(config.get(name) for name in LINE_FIELDS)


def _merge(*configs: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """First non-empty value per field, most specific config first"""
    merged = {}
    for name in LINE_FIELDS:
        merged[name] = next(
            (c.get(name) for c in configs if c and c.get(name) is not None),
            None,
        )
    return merged


def tenant_line_mode(tenant: Tenant) -> str:
    mode = (tenant.line_config or {}).get("mode") or "tenant"
    return mode if mode in LINE_MODES else "tenant"


def resolve_line_config(
    tenant: Tenant,
    store: Optional[Store] = None,
    practitioner: Optional[Practitioner] = None,
) -> ResolvedLineConfig:
    """Pick the effective LINE configuration and report which level supplied it"""
    mode = tenant_line_mode(tenant)
    tenant_config = tenant.line_config or {}
    store_config = (store.line_config or {}) if store is not None else {}

    # Candidate levels, most specific first; evaluated lazily in order
    sources: List[Tuple[str, Callable[[], Optional[ResolvedLineConfig]]]] = []

    if mode == "practitioner":
        def from_practitioner():
            if practitioner is None or not has_line_fields(practitioner.line_config):
                return None
            return ResolvedLineConfig(
                mode=mode,
                source="practitioner",
                config=_merge(practitioner.line_config, store_config, tenant_config),
                store_id=store.id if store is not None else None,
                practitioner_id=practitioner.id,
            )
        sources.append(("practitioner", from_practitioner))

    if mode in ("store", "practitioner"):
        def from_store():
            if store is None or not has_line_fields(store_config):
                return None
            return ResolvedLineConfig(
                mode=mode,
                source="store",
                config=_merge(store_config, tenant_config),
                store_id=store.id,
            )
        sources.append(("store", from_store))

    for _, source in sources:
        resolved = source()
        if resolved is not None:
            return resolved

    return ResolvedLineConfig(mode=mode, source="tenant", config=_merge(tenant_config))
