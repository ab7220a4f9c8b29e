# assay_core/tests/test_visibility.py

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from assay_core.identity import actor_for_user
from assay_core.models import Role, SampleStatus
from assay_core.services.reports import create_report
from assay_core.services.samples import apply_status, create_sample


class VisibilityTests(TestCase):
    """
    Ownership guarantees across samples, reports and rollups.

    1. Clients only see their own samples and reports
    2. Supervisors and administrators see the whole laboratory
    3. Anonymous callers get 401 before any lookup happens
    """

    def setUp(self):
        self.client = APIClient()
        User = get_user_model()

        def make(email, role):
            user = User.objects.create_user(username=email, email=email, password="Quartz-Vein-2931")
            user.profile.role = role
            user.profile.save()
            return user

        self.alice = make("alice@mines.example", Role.CLIENT)
        self.bob = make("bob@mines.example", Role.CLIENT)
        self.analyst = make("analyst@lab.example", Role.ANALYST)
        self.supervisor = make("supervisor@lab.example", Role.SUPERVISOR)

        data = {"mineral": "CO", "site": "Mutanda", "unit": "PERCENT", "mass": "4.00"}
        self.alice_sample = create_sample(actor=actor_for_user(self.alice), data=data)
        self.bob_sample = create_sample(actor=actor_for_user(self.bob), data=data)

        fields = apply_status(self.bob_sample, SampleStatus.ANALYZING)
        self.bob_sample.save(update_fields=fields)
        self.bob_report = create_report(
            actor=actor_for_user(self.analyst),
            sample_id=self.bob_sample.pk,
            grade=Decimal("0.85"),
            unit="PERCENT",
        )

    def test_anonymous_gets_401_even_for_unknown_ids(self):
        self.assertEqual(self.client.get(f"/assay/samples/{self.alice_sample.pk}/").status_code, 401)
        self.assertEqual(self.client.get("/assay/samples/999999/").status_code, 401)

    def test_client_list_is_isolated(self):
        self.client.force_authenticate(user=self.alice)
        r = self.client.get("/assay/samples/")
        self.assertEqual(r.status_code, 200)
        self.assertEqual([s["code"] for s in r.data["results"]], [self.alice_sample.code])

    def test_client_cannot_read_foreign_report(self):
        self.client.force_authenticate(user=self.alice)
        self.assertEqual(self.client.get(f"/assay/reports/{self.bob_report.pk}/").status_code, 403)
        self.assertEqual(self.client.get("/assay/reports/").data["count"], 0)

    def test_supervisor_sees_everything(self):
        self.client.force_authenticate(user=self.supervisor)
        self.assertEqual(self.client.get("/assay/samples/").data["count"], 2)
        self.assertEqual(self.client.get(f"/assay/reports/{self.bob_report.pk}/").status_code, 200)

    def test_dashboard_is_scoped(self):
        self.client.force_authenticate(user=self.alice)
        stats = self.client.get("/assay/dashboard/stats/").data
        self.assertEqual(stats["total_samples"], 1)
        self.assertEqual(stats["completed_samples"], 0)

        self.client.force_authenticate(user=self.bob)
        stats = self.client.get("/assay/dashboard/stats/").data
        self.assertEqual(stats["completed_samples"], 1)
