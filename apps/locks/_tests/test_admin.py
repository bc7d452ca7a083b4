import pytest

from apps.locks.models import OrgLock
from apps.locks.services import lock_org


@pytest.mark.django_db
class TestOrgLockAdmin:
    def test_changelist_loads(self, admin_client):
        lock_org("org-1")

        response = admin_client.get("/admin/locks/orglock/")

        assert response.status_code == 200
        assert b"org-1" in response.content

    def test_release_selected_action(self, admin_client):
        lock_org("org-1")
        lock_org("org-2")
        ids = list(OrgLock.objects.values_list("pk", flat=True))

        response = admin_client.post(
            "/admin/locks/orglock/",
            {"action": "release_selected", "_selected_action": ids},
        )

        assert response.status_code == 302
        assert not OrgLock.objects.exists()

    def test_release_object_action(self, admin_client):
        lock_org("org-1")
        lock = OrgLock.objects.get()

        response = admin_client.get(f"/admin/locks/orglock/{lock.pk}/actions/release/")

        assert response.status_code == 302
        assert not OrgLock.objects.exists()
