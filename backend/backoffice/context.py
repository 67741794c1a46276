# Overview: Immutable per-call request context passed into every core operation.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


MANAGER_ROLES = frozenset({"OWNER", "BRAND_ADMIN", "MANAGER"})
ROLES = frozenset({"OWNER", "BRAND_ADMIN", "MANAGER", "STAFF"})


@dataclass(frozen=True)
class RequestContext:
    """
    Who is acting, for which tenant and outlet.

    Built once per request from the identity service's assertions and handed
    explicitly to services (no ambient/thread-local state).
    """
    tenant_id: int
    outlet_id: int
    actor_id: Optional[int] = None
    role: str = "STAFF"

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"unknown role {self.role!r}")

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    def for_outlet(self, outlet_id: int) -> "RequestContext":
        return RequestContext(
            tenant_id=self.tenant_id,
            outlet_id=outlet_id,
            actor_id=self.actor_id,
            role=self.role,
        )
