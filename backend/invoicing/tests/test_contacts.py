import pytest
from django.urls import reverse

from core.exceptions import ProviderUnavailable
from invoicing.models import XeroContact
from invoicing.services import contacts
from invoicing.services.xero import XeroError

XERO_CONTACTS = {
    "Contacts": [
        {
            "ContactID": "contact-1",
            "Name": "Acme Travel",
            "EmailAddress": "accounts@acme.test",
            "AccountNumber": "ACME01",
            "IsCustomer": True,
            "Phones": [
                {"PhoneType": "MOBILE", "PhoneNumber": "07700 900000"},
                {"PhoneType": "DEFAULT", "PhoneNumber": "020 7946 0000"},
            ],
        },
        {"ContactID": "contact-2", "Name": "Bolt Events", "IsCustomer": True},
    ]
}


@pytest.mark.django_db
def test_sync_replaces_cached_contacts(tenant, organization, xero_connection, fake_xero):
    XeroContact.objects.create(organization=organization, xero_contact_id="stale", name="Gone Ltd")
    fake_xero.queue(XERO_CONTACTS)

    count = contacts.sync_contacts(tenant)

    assert count == 2
    assert fake_xero.calls[0].params == {"where": "IsCustomer==true"}
    assert list(XeroContact.objects.values_list("xero_contact_id", flat=True)) == [
        "contact-1",
        "contact-2",
    ]
    acme = XeroContact.objects.get(xero_contact_id="contact-1")
    assert acme.phone == "020 7946 0000"
    assert acme.account_number == "ACME01"


@pytest.mark.django_db
def test_sync_failure_is_reported(tenant, xero_connection, fake_xero):
    fake_xero.queue(XeroError("Xero API error: 500", status_code=500))

    with pytest.raises(ProviderUnavailable):
        contacts.sync_contacts(tenant)


@pytest.mark.django_db
def test_remote_search_sanitizes_query(tenant, xero_connection, fake_xero):
    fake_xero.queue(XERO_CONTACTS)

    results = contacts.search_xero_contacts(tenant, 'Acme") OR (1==1')

    assert fake_xero.calls[0].params == {
        "where": 'Name.Contains("Acme OR 11") AND IsCustomer==true'
    }
    assert results[0] == {
        "xero_contact_id": "contact-1",
        "name": "Acme Travel",
        "email": "accounts@acme.test",
        "phone": "020 7946 0000",
    }


@pytest.mark.django_db
def test_blank_remote_search_skips_xero(tenant, xero_connection, fake_xero):
    assert contacts.search_xero_contacts(tenant, '"()') == []
    assert fake_xero.calls == []


@pytest.mark.django_db
def test_contact_endpoints(auth_client, organization, xero_connection, fake_xero):
    fake_xero.queue(XERO_CONTACTS)

    synced = auth_client.post(reverse("xero-contacts-sync"))
    listed = auth_client.get(reverse("xero-contacts"), {"q": "acme"})

    assert synced.data == {"success": True, "count": 2}
    assert [row["name"] for row in listed.data] == ["Acme Travel"]
