import pytest

from apps.ledger.models import Organization, Package, PackageDonation


@pytest.mark.django_db
class TestLedgerAdmin:
    def test_organization_changelist_loads(self, admin_client):
        Organization.objects.create(name="acme")

        response = admin_client.get("/admin/ledger/organization/")

        assert response.status_code == 200
        assert b"acme" in response.content

    def test_package_changelist_shows_totals(self, admin_client):
        package = Package.objects.create(name="react", language="javascript", registry="npm")
        PackageDonation.objects.create(
            package=package, organization_id="org-1", amount=1234.0, timestamp=1
        )

        response = admin_client.get("/admin/ledger/package/")

        assert response.status_code == 200
        assert b"1234" in response.content

    def test_donation_entries_cannot_be_changed(self, admin_client):
        package = Package.objects.create(name="react", language="javascript", registry="npm")
        entry = PackageDonation.objects.create(
            package=package, organization_id="org-1", amount=1.0, timestamp=1
        )

        response = admin_client.post(
            f"/admin/ledger/packagedonation/{entry.pk}/change/", {"amount": "99"}
        )

        entry.refresh_from_db()
        assert entry.amount == 1.0
        assert response.status_code in (200, 403)
