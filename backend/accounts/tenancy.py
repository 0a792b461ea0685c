"""
Resolve an authenticated identity to the organization it is acting for.

Every orchestration entry point calls :func:`resolve_tenant` once at the
boundary and passes the resulting :class:`TenantContext` down explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from core.exceptions import NoTenant, RoleNotPermitted, Unauthenticated
from orgs.models import Organization

from .models import Membership, User


@dataclass(frozen=True)
class TenantContext:
    organization: Organization
    user: User
    role: str
    membership: Membership

    @property
    def organization_id(self) -> int:
        return self.organization.pk

    @property
    def is_driver(self) -> bool:
        return self.role == Membership.DRIVER

    @property
    def driver_id(self) -> int | None:
        return self.membership.driver_id


def resolve_tenant(user, roles: Iterable[str] | None = None) -> TenantContext:
    if user is None or not getattr(user, "is_authenticated", False):
        raise Unauthenticated()

    organization_id = getattr(user, "active_organization_id", None)
    if organization_id is None:
        raise NoTenant()

    membership = (
        Membership.objects.select_related("organization")
        .filter(user=user, organization_id=organization_id, is_active=True)
        .first()
    )
    if membership is None:
        raise NoTenant("You are not an active member of the selected organization.")

    if roles is not None and membership.role not in set(roles):
        raise RoleNotPermitted()

    return TenantContext(
        organization=membership.organization,
        user=user,
        role=membership.role,
        membership=membership,
    )


def select_organization(user, organization: Organization) -> TenantContext:
    """Switch the identity's active organization; the user must be a member."""
    if user is None or not getattr(user, "is_authenticated", False):
        raise Unauthenticated()
    if not Membership.objects.filter(user=user, organization=organization, is_active=True).exists():
        raise NoTenant("You are not an active member of that organization.")
    user.active_organization = organization
    user.save(update_fields=["active_organization"])
    return resolve_tenant(user)
