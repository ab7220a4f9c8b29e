# assay_core/tests/test_api_endpoints.py

from decimal import Decimal

import pytest
from rest_framework import status

from assay_core.models import AuditLog, Report, SampleStatus
from assay_core.services.reports import create_report
from assay_core.tracking import luhn_check_digit


pytestmark = pytest.mark.django_db


SAMPLES = "/assay/samples/"
REPORTS = "/assay/reports/"


def _new_sample(api_client, **extra):
    payload = {"mineral": "Cu", "site": "Kamoto Pit 3", "unit": "%", "mass": "2.50"}
    payload.update(extra)
    return api_client.post(SAMPLES, payload, format="json")


# ------------------------------------------------------------------
# System
# ------------------------------------------------------------------

def test_health_is_public(api_client):
    r = api_client.get("/assay/health/")
    assert r.status_code == 200
    assert r.data["database"] == "healthy"


def test_anonymous_is_rejected(api_client):
    assert api_client.get(SAMPLES).status_code == status.HTTP_401_UNAUTHORIZED


# ------------------------------------------------------------------
# Samples
# ------------------------------------------------------------------

def test_create_and_fetch_sample(api_client, client_user):
    api_client.force_authenticate(user=client_user)

    r = _new_sample(api_client)
    assert r.status_code == status.HTTP_201_CREATED, r.data
    assert r.data["status"] == "RECEIVED"
    assert r.data["mineral"] == "CU"
    assert r.data["mineral_label"] == "Cu"
    assert r.data["unit_label"] == "%"
    assert r.data["client"]["id"] == client_user.pk
    assert r.data["allowed_next_states"] == ["CANCELLED", "PREP"]
    assert len(r.data["timeline"]) == 1

    code = r.data["code"]
    by_code = api_client.get(f"{SAMPLES}code/{code}/")
    assert by_code.status_code == 200
    assert by_code.data["id"] == r.data["id"]

    by_id = api_client.get(f"{SAMPLES}{r.data['id']}/")
    assert by_id.data["code"] == code


def test_client_cannot_set_status_on_create(api_client, client_user):
    api_client.force_authenticate(user=client_user)
    r = _new_sample(api_client, status="REPORTED")
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert "status" in r.data


def test_list_is_paginated_and_scoped(api_client, client_user, other_client, sample_factory):
    for _ in range(3):
        sample_factory(client_user)
    sample_factory(other_client)

    api_client.force_authenticate(user=client_user)
    r = api_client.get(SAMPLES, {"limit": 2})
    assert r.status_code == 200
    assert r.data["count"] == 3
    assert len(r.data["results"]) == 2


def test_other_clients_sample_is_forbidden(api_client, client_user, other_client, sample_factory):
    sample = sample_factory(other_client)
    api_client.force_authenticate(user=client_user)
    assert api_client.get(f"{SAMPLES}{sample.pk}/").status_code == status.HTTP_403_FORBIDDEN


def test_unknown_sample_is_404(api_client, client_user):
    api_client.force_authenticate(user=client_user)
    assert api_client.get(f"{SAMPLES}RC-999999/").status_code == status.HTTP_404_NOT_FOUND


def test_patch_status_through_api(api_client, analyst_user, client_user, sample_factory):
    sample = sample_factory(client_user)
    api_client.force_authenticate(user=analyst_user)

    r = api_client.patch(f"{SAMPLES}{sample.pk}/", {"status": "Preparation", "status_note": "jaw crusher"}, format="json")
    assert r.status_code == 200, r.data
    assert r.data["status"] == "PREP"
    assert r.data["timeline"][-1]["notes"] == "jaw crusher"

    bad = api_client.patch(f"{SAMPLES}{sample.pk}/", {"status": "REPORTED"}, format="json")
    assert bad.status_code == status.HTTP_400_BAD_REQUEST


def test_delete_cancels(api_client, client_user, sample_factory):
    sample = sample_factory(client_user)
    api_client.force_authenticate(user=client_user)

    r = api_client.delete(f"{SAMPLES}{sample.pk}/")
    assert r.status_code == 200
    assert r.data["status"] == "CANCELLED"

    again = api_client.delete(f"{SAMPLES}{sample.pk}/")
    assert again.status_code == status.HTTP_409_CONFLICT


def test_timeline_endpoints(api_client, analyst_user, client_user, sample_factory):
    sample = sample_factory(client_user)
    api_client.force_authenticate(user=analyst_user)

    r = api_client.post(f"{SAMPLES}{sample.pk}/timeline/", {"status": "PREP", "notes": "split"}, format="json")
    assert r.status_code == status.HTTP_201_CREATED, r.data

    api_client.force_authenticate(user=client_user)
    listed = api_client.get(f"{SAMPLES}{sample.pk}/timeline/")
    assert [e["status"] for e in listed.data] == ["RECEIVED", "PREP"]

    denied = api_client.post(f"{SAMPLES}{sample.pk}/timeline/", {"status": "ANALYZING"}, format="json")
    assert denied.status_code == status.HTTP_403_FORBIDDEN


def test_sample_stats_endpoint(api_client, client_user, sample_factory):
    sample_factory(client_user)
    api_client.force_authenticate(user=client_user)
    r = api_client.get(f"{SAMPLES}stats/")
    assert r.status_code == 200
    assert r.data["total_samples"] == 1


# ------------------------------------------------------------------
# Reports
# ------------------------------------------------------------------

def test_issue_report_over_api(api_client, analyst_user, client_user, sample_factory):
    sample = sample_factory(client_user, status=SampleStatus.ANALYZING)
    api_client.force_authenticate(user=analyst_user)

    r = api_client.post(REPORTS, {"sample_id": sample.code, "grade": "2.15", "unit": "%"}, format="json")
    assert r.status_code == status.HTTP_201_CREATED, r.data
    assert r.data["report_code"] == f"RPT-{sample.code}"
    assert r.data["verification_url"].endswith(f"?hash={r.data['hash']}")

    dup = api_client.post(REPORTS, {"sample_id": sample.code, "grade": "2.15", "unit": "%"}, format="json")
    assert dup.status_code == status.HTTP_409_CONFLICT


def test_only_staff_issue_reports_over_api(api_client, client_user, sample_factory):
    sample = sample_factory(client_user, status=SampleStatus.ANALYZING)

    assert api_client.post(REPORTS, {"sample_id": sample.pk, "grade": "1", "unit": "%"}, format="json").status_code == 401

    api_client.force_authenticate(user=client_user)
    r = api_client.post(REPORTS, {"sample_id": sample.pk, "grade": "1", "unit": "%"}, format="json")
    assert r.status_code == status.HTTP_403_FORBIDDEN
    assert not Report.objects.exists()


def test_premature_report_is_400(api_client, analyst_user, client_user, sample_factory):
    sample = sample_factory(client_user)
    api_client.force_authenticate(user=analyst_user)
    r = api_client.post(REPORTS, {"sample_id": sample.pk, "grade": "1", "unit": "PPM"}, format="json")
    assert r.status_code == status.HTTP_400_BAD_REQUEST


def _issued(analyst_user, client_user, sample_factory) -> Report:
    from assay_core.identity import actor_for_user

    sample = sample_factory(client_user, status=SampleStatus.QA_QC)
    return create_report(actor=actor_for_user(analyst_user), sample_id=sample.pk, grade=Decimal("3.2"), unit="PERCENT")


def test_public_report_by_code_is_redacted(api_client, analyst_user, client_user, sample_factory):
    report = _issued(analyst_user, client_user, sample_factory)

    r = api_client.get(f"{REPORTS}code/{report.report_code}/")
    assert r.status_code == 200
    client_block = r.data["sample"]["client"]
    assert client_block["name"] == "Confidential"
    assert client_block["email"] == ""
    assert client_block["company"] == "Katanga Copper SARL"
    assert "email" not in r.data["issued_by"]

    api_client.force_authenticate(user=client_user)
    owned = api_client.get(f"{REPORTS}code/{report.report_code}/")
    assert owned.data["sample"]["client"]["email"] == client_user.email


def test_public_verification(api_client, analyst_user, client_user, sample_factory):
    report = _issued(analyst_user, client_user, sample_factory)
    url = f"/assay/reports/verify/{report.report_code}/"

    ok = api_client.get(url, {"hash": report.hash})
    assert ok.status_code == 200
    assert ok.data["valid"] is True
    assert ok.data["report"]["sample"]["client"]["name"] == "Confidential"

    bad = api_client.get(url, {"hash": "F" * 64})
    assert bad.status_code == 200
    assert bad.data["valid"] is False
    assert bad.data["report"] is None

    assert api_client.get(f"{url}?hash=").data["valid"] is False

    missing = api_client.get("/assay/reports/verify/RPT-RC-999999/")
    assert missing.data == {"valid": False, "message": "Report not found", "report": None}


def test_certification_requires_privilege(api_client, analyst_user, supervisor_user, client_user, sample_factory):
    report = _issued(analyst_user, client_user, sample_factory)
    url = f"{REPORTS}{report.pk}/certification/"

    api_client.force_authenticate(user=analyst_user)
    assert api_client.patch(url, {"certified": True}, format="json").status_code == 403

    api_client.force_authenticate(user=supervisor_user)
    r = api_client.patch(url, {"certified": True}, format="json")
    assert r.status_code == 200
    assert r.data["certified"] is True


def test_report_list_filters(api_client, analyst_user, client_user, supervisor_user, sample_factory):
    _issued(analyst_user, client_user, sample_factory)
    api_client.force_authenticate(user=supervisor_user)

    assert api_client.get(REPORTS, {"certified": "false"}).data["count"] == 1
    assert api_client.get(REPORTS, {"certified": "true"}).data["count"] == 0
    assert api_client.get(f"{REPORTS}stats/").data["total_reports"] == 1


# ------------------------------------------------------------------
# Public tracking
# ------------------------------------------------------------------

def test_tracking_hides_client(api_client, client_user, sample_factory):
    sample = sample_factory(client_user, site="Tenke Fungurume")

    r = api_client.get("/assay/tracking/tenke/")
    assert r.status_code == 200
    assert r.data["count"] == 1
    row = r.data["results"][0]
    assert row["code"] == sample.code
    assert "client" not in row
    assert row["timeline"][0]["status"] == "RECEIVED"


def test_tracking_bad_check_digit(api_client):
    digits = "1234567"
    wrong = (luhn_check_digit(digits) + 1) % 10
    r = api_client.get(f"/assay/tracking/{digits}-{wrong}/")
    assert r.status_code == status.HTTP_400_BAD_REQUEST


# ------------------------------------------------------------------
# Dashboard and workflow metadata
# ------------------------------------------------------------------

def test_dashboard_endpoints(api_client, client_user, supervisor_user):
    api_client.force_authenticate(user=client_user)
    assert api_client.get("/assay/dashboard/stats/").status_code == 200
    assert api_client.get("/assay/dashboard/system/").status_code == 403

    api_client.force_authenticate(user=supervisor_user)
    assert api_client.get("/assay/dashboard/system/").status_code == 200


def test_workflow_endpoints(api_client, client_user):
    api_client.force_authenticate(user=client_user)
    assert api_client.get("/assay/workflows/sample/").data["initial"] == "RECEIVED"

    nxt = api_client.get("/assay/workflows/sample/next/", {"current": "analyzing"})
    assert nxt.data == {"current": "ANALYZING", "allowed_next": ["QA_QC", "REPORTED"], "terminal": False}

    assert api_client.get("/assay/workflows/sample/next/", {"current": "LOST"}).status_code == 400


# ------------------------------------------------------------------
# Error recording
# ------------------------------------------------------------------

def test_server_errors_are_recorded(api_client, client_user, monkeypatch):
    from django.db import DatabaseError

    from assay_core.services import dashboard

    def boom(*args, **kwargs):
        raise DatabaseError("connection lost")

    monkeypatch.setattr(dashboard, "sample_stats", boom)
    api_client.force_authenticate(user=client_user)

    r = api_client.get(f"{SAMPLES}stats/")
    assert r.status_code == 500
    assert AuditLog.objects.filter(action=AuditLog.ERROR_ACTION, entity_id="500").count() == 1
