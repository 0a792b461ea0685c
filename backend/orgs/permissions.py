from rest_framework.permissions import BasePermission

from accounts.tenancy import resolve_tenant


class HasTenantRole(BasePermission):
    """
    Resolve the caller's organization and attach it to the view as ``view.tenant``.

    Views narrow the allowed roles with ``tenant_roles`` (all roles when unset) or
    per action with ``get_tenant_roles()``. Failures raise the typed tenancy errors.
    """

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if hasattr(view, "get_tenant_roles"):
            roles = view.get_tenant_roles()
        else:
            roles = getattr(view, "tenant_roles", None)
        view.tenant = resolve_tenant(request.user, roles=roles)
        return True
