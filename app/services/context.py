"""Tenant context threaded through every store and resolver call"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID


@dataclass(frozen=True)
class TenantContext:
    """Explicit tenant/store scope for a single request"""
    tenant_id: UUID
    store_id: Optional[UUID] = None

    def with_store(self, store_id: Optional[UUID]) -> "TenantContext":
        return TenantContext(tenant_id=self.tenant_id, store_id=store_id)
