import pytest
from django.contrib.auth.models import AnonymousUser

from accounts.models import Membership, User
from accounts.tenancy import resolve_tenant
from core.exceptions import NoTenant, RoleNotPermitted, Unauthenticated


@pytest.mark.django_db
def test_resolve_tenant_returns_active_membership(admin_user, organization):
    tenant = resolve_tenant(admin_user)

    assert tenant.organization == organization
    assert tenant.organization_id == organization.pk
    assert tenant.role == Membership.ADMIN
    assert tenant.is_driver is False


def test_anonymous_caller_is_unauthenticated():
    with pytest.raises(Unauthenticated):
        resolve_tenant(AnonymousUser())


@pytest.mark.django_db
def test_user_without_selected_organization_has_no_tenant():
    user = User.objects.create_user(username="loose@example.com", password="examplepass")

    with pytest.raises(NoTenant):
        resolve_tenant(user)


@pytest.mark.django_db
def test_inactive_membership_has_no_tenant(admin_user):
    admin_user.memberships.get().mark_inactive()

    with pytest.raises(NoTenant):
        resolve_tenant(admin_user)


@pytest.mark.django_db
def test_stale_active_organization_is_not_trusted(admin_user, other_organization):
    admin_user.active_organization = other_organization
    admin_user.save(update_fields=["active_organization"])

    with pytest.raises(NoTenant):
        resolve_tenant(admin_user)


@pytest.mark.django_db
def test_role_outside_allowed_set_is_refused(dispatcher_user):
    with pytest.raises(RoleNotPermitted):
        resolve_tenant(dispatcher_user, roles=(Membership.ADMIN,))


@pytest.mark.django_db
def test_driver_membership_carries_driver(make_member, organization, driver):
    user = make_member(organization, Membership.DRIVER, driver=driver)

    tenant = resolve_tenant(user)

    assert tenant.is_driver is True
    assert tenant.driver_id == driver.pk
