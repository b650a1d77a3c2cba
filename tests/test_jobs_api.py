"""Integration tests for the jobs API: submission, ownership-scoped reads,
and an end-to-end KEYWORDS run through the worker."""

import json
from unittest.mock import patch, MagicMock

from contentforge.database import SessionLocal
from contentforge.services.generation_service import GenerationService
from contentforge.services.job_runner import JobRunner
from tests.conftest import reload_job


class TestSubmitJob:

    def test_create_returns_id(self, client, auth_headers):
        resp = client.post("/api/v1/jobs", json={"type": "KEYWORDS", "seed": "electric bikes"}, headers=auth_headers)
        assert resp.status_code == 201
        job_id = resp.json()["id"]

        stored = reload_job(job_id)
        assert stored.status == "PENDING"
        assert stored.user_id == "user-a"
        assert stored.type == "KEYWORDS"
        assert stored.attempt == 0
        assert stored.payload == {"seed": "electric bikes"}

    def test_type_is_case_insensitive(self, client, auth_headers):
        resp = client.post("/api/v1/jobs", json={"type": "hashtags", "title": "t", "content": "c"}, headers=auth_headers)
        assert resp.status_code == 201
        assert reload_job(resp.json()["id"]).type == "HASHTAGS"

    def test_payload_is_stored_verbatim(self, client, auth_headers):
        body = {
            "type": "ARTICLE",
            "topic": "bikes",
            "keywords": ["a", {"keyword": "b"}],
            "settings": {"length": "long"},
        }
        resp = client.post("/api/v1/jobs", json=body, headers=auth_headers)
        stored = reload_job(resp.json()["id"])
        assert stored.payload == {k: v for k, v in body.items() if k != "type"}

    def test_unsupported_type(self, client, auth_headers):
        resp = client.post("/api/v1/jobs", json={"type": "VIDEO"}, headers=auth_headers)
        assert resp.status_code == 400
        data = resp.json()
        assert data["error"] == "UNSUPPORTED_JOB_TYPE"
        assert data["details"]["received"] == "VIDEO"
        assert data["details"]["supported"] == ["KEYWORDS", "ARTICLE", "SEO", "META", "IMAGE", "HASHTAGS"]

    def test_missing_type(self, client, auth_headers):
        resp = client.post("/api/v1/jobs", json={"seed": "x"}, headers=auth_headers)
        assert resp.status_code == 400

    def test_requires_auth(self, client):
        resp = client.post("/api/v1/jobs", json={"type": "KEYWORDS", "seed": "x"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "UNAUTHORIZED"

    def test_rejects_bad_token(self, client):
        resp = client.post(
            "/api/v1/jobs",
            json={"type": "KEYWORDS", "seed": "x"},
            headers={"Authorization": "Bearer not.a.token"},
        )
        assert resp.status_code == 401


class TestGetJob:

    def _submit(self, client, headers, **body):
        body.setdefault("type", "KEYWORDS")
        return client.post("/api/v1/jobs", json=body, headers=headers).json()["id"]

    def test_owner_sees_pending_job(self, client, auth_headers):
        job_id = self._submit(client, auth_headers, seed="bikes")
        resp = client.get(f"/api/v1/jobs/{job_id}", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == job_id
        assert data["user_id"] == "user-a"
        assert data["type"] == "KEYWORDS"
        assert data["status"] == "PENDING"
        assert "result" not in data
        assert "error" not in data
        assert "model" not in data

    def test_other_user_gets_404(self, client, auth_headers, other_auth_headers):
        job_id = self._submit(client, auth_headers, seed="bikes")
        resp = client.get(f"/api/v1/jobs/{job_id}", headers=other_auth_headers)
        assert resp.status_code == 404
        assert resp.json()["error"] == "JOB_NOT_FOUND"

    def test_unknown_id_gets_404(self, client, auth_headers):
        resp = client.get("/api/v1/jobs/7f1c0a52-3f5e-4a8e-9b0e-2d7a1c9e4b11", headers=auth_headers)
        assert resp.status_code == 404

    def test_malformed_id_gets_400(self, client, auth_headers):
        resp = client.get("/api/v1/jobs/not-a-uuid", headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "VALIDATION_ERROR"

    def test_requires_auth(self, client, auth_headers):
        job_id = self._submit(client, auth_headers, seed="bikes")
        assert client.get(f"/api/v1/jobs/{job_id}").status_code == 401


class TestEndToEnd:

    @patch("litellm.completion")
    def test_keywords_job_runs_to_success(self, mock_completion, client, auth_headers, other_auth_headers):
        reply = {"topic": "electric bikes", "keywords": [{"keyword": "e-bike", "volume": 900, "difficulty": 20}]}
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content=json.dumps(reply)))]
        response.usage = MagicMock(total_tokens=57)
        mock_completion.return_value = response

        job_id = client.post(
            "/api/v1/jobs", json={"type": "KEYWORDS", "seed": "electric bikes"}, headers=auth_headers
        ).json()["id"]

        runner = JobRunner(
            session_factory=SessionLocal,
            generator=GenerationService(api_key="test-key", sleep=lambda s: None),
            instance_id="worker-test",
            sleep=lambda s: None,
        )
        assert runner.tick() == job_id

        resp = client.get(f"/api/v1/jobs/{job_id}", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "SUCCEEDED"
        assert data["result"]["topic"] == "electric bikes"
        assert len(data["result"]["keywords"]) > 0
        assert data["tokens_used"] == 57
        assert data["model"] == "gemini/gemini-2.0-flash"

        assert client.get(f"/api/v1/jobs/{job_id}", headers=other_auth_headers).status_code == 404
