# assay_core/tests/test_documents.py

import pytest
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework import status

from assay_core.models import SampleDocument
from assay_core.services.documents import stored_name, subdir_for


pytestmark = pytest.mark.django_db


@pytest.fixture(autouse=True)
def _media_root(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path


def _pdf(name="fire assay.pdf"):
    return SimpleUploadedFile(name, b"%PDF-1.4 assay certificate", content_type="application/pdf")


def test_subdir_and_stored_name():
    assert subdir_for("image/png") == "images"
    assert subdir_for("application/pdf") == "pdfs"
    assert subdir_for("text/csv") == "documents"

    name = stored_name("../../etc/Lab Sheet #4.PDF")
    assert name.startswith("Lab_Sheet__4-")
    assert name.endswith(".pdf")
    assert "/" not in name


def test_upload_list_and_download(api_client, client_user, sample_factory):
    sample = sample_factory(client_user)
    api_client.force_authenticate(user=client_user)

    r = api_client.post(f"/assay/samples/{sample.pk}/documents/", {"file": _pdf()}, format="multipart")
    assert r.status_code == status.HTTP_201_CREATED, r.data
    assert r.data["original_name"] == "fire assay.pdf"
    assert r.data["mime_type"] == "application/pdf"
    assert r.data["url"].startswith(f"/assay/files/samples/{sample.code}/pdfs/")

    doc = SampleDocument.objects.get(pk=r.data["id"])
    assert default_storage.exists(doc.path)

    listed = api_client.get(f"/assay/samples/{sample.pk}/documents/")
    assert [d["id"] for d in listed.data] == [doc.pk]

    api_client.force_authenticate(user=None)
    download = api_client.get(r.data["url"])
    assert download.status_code == 200
    assert b"".join(download.streaming_content) == b"%PDF-1.4 assay certificate"


def test_rejects_disallowed_type(api_client, client_user, sample_factory):
    sample = sample_factory(client_user)
    api_client.force_authenticate(user=client_user)

    upload = SimpleUploadedFile("notes.txt", b"hello", content_type="text/plain")
    r = api_client.post(f"/assay/samples/{sample.pk}/documents/", {"file": upload}, format="multipart")
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert SampleDocument.objects.count() == 0


def test_rejects_oversized_file(settings, api_client, client_user, sample_factory):
    settings.UPLOAD_MAX_FILE_SIZE = 10
    sample = sample_factory(client_user)
    api_client.force_authenticate(user=client_user)

    r = api_client.post(f"/assay/samples/{sample.pk}/documents/", {"file": _pdf()}, format="multipart")
    assert r.status_code == status.HTTP_400_BAD_REQUEST


def test_other_clients_cannot_attach(api_client, client_user, other_client, sample_factory):
    sample = sample_factory(other_client)
    api_client.force_authenticate(user=client_user)

    r = api_client.post(f"/assay/samples/{sample.pk}/documents/", {"file": _pdf()}, format="multipart")
    assert r.status_code == status.HTTP_403_FORBIDDEN


def test_analyst_attaches_results_to_client_sample(api_client, analyst_user, client_user, sample_factory):
    sample = sample_factory(client_user)
    api_client.force_authenticate(user=analyst_user)

    r = api_client.post(f"/assay/samples/{sample.pk}/documents/", {"file": _pdf("icp run.pdf")}, format="multipart")
    assert r.status_code == status.HTTP_201_CREATED, r.data
    assert SampleDocument.objects.get(pk=r.data["id"]).uploaded_by_id == analyst_user.pk


def test_delete_removes_row_and_file(api_client, client_user, sample_factory, django_capture_on_commit_callbacks):
    sample = sample_factory(client_user)
    api_client.force_authenticate(user=client_user)
    created = api_client.post(f"/assay/samples/{sample.pk}/documents/", {"file": _pdf()}, format="multipart")
    path = SampleDocument.objects.get(pk=created.data["id"]).path

    with django_capture_on_commit_callbacks(execute=True):
        r = api_client.delete(f"/assay/documents/{created.data['id']}/")

    assert r.status_code == status.HTTP_204_NO_CONTENT
    assert not SampleDocument.objects.exists()
    assert not default_storage.exists(path)
    assert api_client.get(f"/assay/files/{path}").status_code == 404


def test_unregistered_paths_are_not_served(api_client):
    assert api_client.get("/assay/files/../../settings.py").status_code == 404


def test_document_stats(api_client, client_user, sample_factory):
    sample = sample_factory(client_user)
    api_client.force_authenticate(user=client_user)
    api_client.post(f"/assay/samples/{sample.pk}/documents/", {"file": _pdf()}, format="multipart")

    r = api_client.get("/assay/documents/stats/")
    assert r.status_code == 200
    assert r.data["total_files"] == 1
    assert r.data["total_size"] == len(b"%PDF-1.4 assay certificate")
    assert r.data["files_by_type"] == [{"type": "application/pdf", "count": 1}]
