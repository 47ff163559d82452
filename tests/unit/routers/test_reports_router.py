"""Unit tests for generated report endpoints."""

from datetime import datetime, timezone
from uuid import uuid4

import asyncpg

from app.jobs.models import Job, ReportJobPayload
from app.jobs.queue import QueueUnavailableError
from app.jobs.types import JobStatus, ReportStatus
from app.repositories.reports import GeneratedReport
from app.services.reports import (
    ReportAlreadyGeneratingError,
    ReportNotFoundError,
    SlugAllocationError,
)


def _report(status: ReportStatus = ReportStatus.COMPLETED, **fields) -> GeneratedReport:
    now = datetime.now(timezone.utc)
    defaults = dict(
        id=uuid4(),
        report_config_id=uuid4(),
        user_id=uuid4(),
        status=status,
        content={"summary": "TL;DR", "articles": [], "metadata": {}},
        is_public=False,
        public_slug=None,
        view_count=0,
        created_at=now,
        generation_started_at=now,
    )
    defaults.update(fields)
    return GeneratedReport(**defaults)


class TestGetReport:
    def test_completed_report(self, client, mock_store):
        report = _report(generation_duration_ms=3100)
        mock_store.get_by_id.return_value = report

        response = client.get(f"/reports/{report.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["content"]["summary"] == "TL;DR"
        assert body["generation_duration_ms"] == 3100

    def test_generating_report_hides_content(self, client, mock_store):
        report = _report(ReportStatus.GENERATING)
        mock_store.get_by_id.return_value = report

        body = client.get(f"/reports/{report.id}").json()

        assert body["status"] == "generating"
        assert body["content"] is None

    def test_unknown_report(self, client, mock_store):
        mock_store.get_by_id.return_value = None
        assert client.get(f"/reports/{uuid4()}").status_code == 404


class TestPublicReport:
    def test_read_by_slug(self, client, mock_store):
        report = _report(is_public=True, public_slug="AbCd_123", view_count=3)
        mock_store.get_by_slug.return_value = report

        response = client.get("/reports/public/AbCd_123")

        assert response.status_code == 200
        body = response.json()
        assert body["public_slug"] == "AbCd_123"
        assert body["view_count"] == 3
        assert "user_id" not in body
        mock_store.get_by_slug.assert_awaited_once_with("AbCd_123")

    def test_unknown_slug(self, client, mock_store):
        mock_store.get_by_slug.return_value = None
        assert client.get("/reports/public/missing1").status_code == 404


class TestVisibility:
    def test_share(self, client, mock_store):
        report = _report(is_public=True, public_slug="Zz9-Zz9-")
        mock_store.set_visibility.return_value = report

        response = client.patch(f"/reports/{report.id}/visibility", json={"is_public": True})

        assert response.status_code == 200
        assert response.json()["public_slug"] == "Zz9-Zz9-"
        mock_store.set_visibility.assert_awaited_once_with(report.id, True)

    def test_unknown_report(self, client, mock_store):
        mock_store.set_visibility.side_effect = ReportNotFoundError("missing")
        response = client.patch(f"/reports/{uuid4()}/visibility", json={"is_public": True})
        assert response.status_code == 404

    def test_slug_exhaustion(self, client, mock_store):
        mock_store.set_visibility.side_effect = SlugAllocationError("no slug")
        response = client.patch(f"/reports/{uuid4()}/visibility", json={"is_public": True})
        assert response.status_code == 500


class TestListAndDelete:
    def test_list_for_user(self, client, mock_store):
        user_id = uuid4()
        mock_store.list_for_user.return_value = [_report(user_id=user_id)]

        response = client.get(f"/reports/user/{user_id}?limit=5&offset=10")

        assert response.status_code == 200
        body = response.json()
        assert len(body["reports"]) == 1
        assert (body["limit"], body["offset"]) == (5, 10)
        mock_store.list_for_user.assert_awaited_once_with(user_id, limit=5, offset=10)

    def test_list_limit_bounds(self, client):
        assert client.get(f"/reports/user/{uuid4()}?limit=0").status_code == 422

    def test_delete(self, client, mock_store):
        mock_store.delete.return_value = True
        assert client.delete(f"/reports/{uuid4()}").status_code == 204

    def test_delete_unknown(self, client, mock_store):
        mock_store.delete.return_value = False
        assert client.delete(f"/reports/{uuid4()}").status_code == 404


class TestGenerateNow:
    def test_accepted(self, client, mock_service):
        config_id = uuid4()
        job = Job(
            id=uuid4(),
            status=JobStatus.WAITING,
            payload=ReportJobPayload(
                company_name="Acme", company_domain="acme.com", target_report_id=uuid4()
            ),
        )
        mock_service.submit_for_config.return_value = job

        response = client.post(f"/reports/configs/{config_id}/generate", json={"is_public": True})

        assert response.status_code == 202
        assert response.json()["report_id"] == str(job.payload.target_report_id)
        mock_service.submit_for_config.assert_awaited_once_with(
            config_id, user_id=None, is_public=True
        )

    def test_unknown_config(self, client, mock_service):
        mock_service.submit_for_config.side_effect = ReportNotFoundError("missing")
        assert client.post(f"/reports/configs/{uuid4()}/generate", json={}).status_code == 404

    def test_already_generating(self, client, mock_service):
        mock_service.submit_for_config.side_effect = ReportAlreadyGeneratingError(uuid4())
        assert client.post(f"/reports/configs/{uuid4()}/generate", json={}).status_code == 409

    def test_queue_unavailable(self, client, mock_service):
        mock_service.submit_for_config.side_effect = QueueUnavailableError("down")
        assert client.post(f"/reports/configs/{uuid4()}/generate", json={}).status_code == 503

    def test_store_unavailable(self, client, mock_service):
        mock_service.submit_for_config.side_effect = ConnectionRefusedError()
        assert client.post(f"/reports/configs/{uuid4()}/generate", json={}).status_code == 503


class TestStoreUnavailable:
    def test_read_by_id(self, client, mock_store):
        mock_store.get_by_id.side_effect = asyncpg.InterfaceError("pool is closing")

        response = client.get(f"/reports/{uuid4()}")

        assert response.status_code == 503
        assert response.json()["detail"].startswith("Report store unavailable")

    def test_read_by_slug(self, client, mock_store):
        mock_store.get_by_slug.side_effect = ConnectionError("reset by peer")
        assert client.get("/reports/public/AbCd_123").status_code == 503

    def test_visibility(self, client, mock_store):
        mock_store.set_visibility.side_effect = OSError("no route to host")
        response = client.patch(f"/reports/{uuid4()}/visibility", json={"is_public": True})
        assert response.status_code == 503

    def test_list_and_delete(self, client, mock_store):
        mock_store.list_for_user.side_effect = ConnectionRefusedError()
        mock_store.delete.side_effect = ConnectionRefusedError()

        assert client.get(f"/reports/user/{uuid4()}").status_code == 503
        assert client.delete(f"/reports/{uuid4()}").status_code == 503
