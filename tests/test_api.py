"""
Venture Plan Workbench
Tests — HTTP API (modules, steps, documents, health).
"""

import pytest

from ventureplan.models.document import Document

HEADERS = {"X-User-Id": "founder-42"}


def _create_module(client, project_id="proj-1", module_type="vision-problem"):
    res = client.post(f"/api/v1/projects/{project_id}/modules/{module_type}", headers=HEADERS)
    assert res.status_code in (200, 201)
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# CATALOG + HEALTH
# ═════════════════════════════════════════════════════════════════════════════

class TestCatalogAndHealth:
    def test_module_types(self, client):
        res = client.get("/api/v1/module-types")
        assert res.status_code == 200
        data = res.get_json()
        assert len(data) == 8
        assert data[0]["module_type"] == "vision-problem"

    def test_health_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.headers["X-Request-ID"]

    def test_health_live(self, client, templates):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        checks = res.get_json()["checks"]
        assert checks["database"]["status"] == "ok"
        assert checks["templates"]["module_types"] == 8

    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Not found"


# ═════════════════════════════════════════════════════════════════════════════
# MODULES
# ═════════════════════════════════════════════════════════════════════════════

class TestModuleAPI:
    def test_get_or_create(self, client):
        res = client.post("/api/v1/projects/proj-1/modules/vision-problem", headers=HEADERS)
        assert res.status_code == 201
        module = res.get_json()
        assert module["created_by"] == "founder-42"
        assert [s["step_type"] for s in module["steps"]] == ["vision", "problem", "solution"]

        res = client.post("/api/v1/projects/proj-1/modules/vision-problem")
        assert res.status_code == 200
        assert res.get_json()["id"] == module["id"]

    def test_get_missing_module_by_type(self, client):
        res = client.get("/api/v1/projects/proj-1/modules/pitch-deck")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_unknown_module_type(self, client):
        res = client.post("/api/v1/projects/proj-1/modules/unicorns")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_CONFIGURATION"

    def test_list_and_get(self, client):
        module = _create_module(client)
        res = client.get("/api/v1/projects/proj-1/modules")
        assert [m["id"] for m in res.get_json()] == [module["id"]]
        res = client.get(f"/api/v1/modules/{module['id']}?include_responses=false")
        assert res.status_code == 200
        assert "responses" not in res.get_json()["steps"][0]

    def test_patch_module(self, client):
        module = _create_module(client)
        res = client.patch(f"/api/v1/modules/{module['id']}", json={"title": "Renamed"})
        assert res.status_code == 200
        assert res.get_json()["title"] == "Renamed"

    def test_patch_rejects_unknown_fields(self, client):
        module = _create_module(client)
        res = client.patch(f"/api/v1/modules/{module['id']}", json={"project_id": "other"})
        assert res.status_code == 400
        assert res.get_json()["details"]["fields"] == ["project_id"]

    def test_patch_invalid_transition(self, client):
        module = _create_module(client)
        client.patch(f"/api/v1/modules/{module['id']}", json={"status": "archived"})
        res = client.patch(f"/api/v1/modules/{module['id']}", json={"status": "completed"})
        assert res.status_code == 422

    def test_delete_module(self, client):
        module = _create_module(client)
        assert client.delete(f"/api/v1/modules/{module['id']}").status_code == 204
        assert client.get(f"/api/v1/modules/{module['id']}").status_code == 404

    def test_navigation_flow(self, client):
        module = _create_module(client)
        mid = module["id"]
        step_ids = [s["id"] for s in module["steps"]]

        res = client.post(f"/api/v1/modules/{mid}/enter")
        assert res.get_json()["module"]["current_step_id"] == step_ids[0]

        res = client.post(f"/api/v1/modules/{mid}/previous")
        assert res.get_json()["outcome"] == "leave_module"

        for expected in ("advanced", "advanced", "completed"):
            res = client.post(f"/api/v1/modules/{mid}/next", headers=HEADERS)
            assert res.status_code == 200
            assert res.get_json()["outcome"] == expected

        body = res.get_json()["module"]
        assert body["status"] == "completed"
        assert body["current_step_id"] is None

        res = client.post(f"/api/v1/modules/{mid}/next")
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_STATE"

    def test_navigation_unknown_module(self, client):
        assert client.post("/api/v1/modules/missing/next").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# STEPS
# ═════════════════════════════════════════════════════════════════════════════

class TestStepAPI:
    def test_save_and_list_responses(self, client):
        module = _create_module(client)
        step_id = module["steps"][0]["id"]

        for text in ("first", "second"):
            res = client.post(f"/api/v1/steps/{step_id}/responses", json={"content": text}, headers=HEADERS)
            assert res.status_code == 201

        body = res.get_json()
        assert body["version"] == 2
        assert body["is_latest"] is True
        assert body["created_by"] == "founder-42"

        res = client.get(f"/api/v1/steps/{step_id}/responses")
        versions = [(r["version"], r["is_latest"]) for r in res.get_json()]
        assert versions == [(2, True), (1, False)]

    def test_response_content_required(self, client):
        module = _create_module(client)
        step_id = module["steps"][0]["id"]
        res = client.post(f"/api/v1/steps/{step_id}/responses", json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"
        res = client.post(f"/api/v1/steps/{step_id}/responses", json={"content": 5})
        assert res.status_code == 400

    def test_response_for_unknown_step(self, client):
        res = client.post("/api/v1/steps/missing/responses", json={"content": "x"})
        assert res.status_code == 404

    def test_step_status(self, client):
        module = _create_module(client)
        step_id = module["steps"][1]["id"]
        res = client.patch(f"/api/v1/steps/{step_id}/status", json={"status": "completed"}, headers=HEADERS)
        assert res.status_code == 200
        assert res.get_json()["completed_by"] == "founder-42"

        res = client.patch(f"/api/v1/steps/{step_id}/status", json={"status": "finished"})
        assert res.status_code == 422

    def test_list_and_get_steps(self, client):
        module = _create_module(client)
        res = client.get(f"/api/v1/modules/{module['id']}/steps")
        assert [s["order_index"] for s in res.get_json()] == [0, 1, 2]
        step_id = module["steps"][0]["id"]
        res = client.get(f"/api/v1/steps/{step_id}")
        assert res.get_json()["responses"] == []


# ═════════════════════════════════════════════════════════════════════════════
# DOCUMENTS
# ═════════════════════════════════════════════════════════════════════════════

class TestDocumentAPI:
    def _answer(self, client, module):
        for step in module["steps"]:
            client.post(
                f"/api/v1/steps/{step['id']}/responses",
                json={"content": f"Answer for {step['step_type']}"},
            )

    def test_generate_download_and_delete(self, client, templates):
        module = _create_module(client)
        self._answer(client, module)

        res = client.post(f"/api/v1/modules/{module['id']}/documents", json={
            "project_data": {"project_name": "Acme"},
            "generation": {"format": "md"},
            "enrichment": {"include_market_data": True},
        })
        assert res.status_code == 201
        result = res.get_json()
        assert result["status"] == "completed"
        assert result["enriched"] is True

        download = client.get(result["url"])
        assert download.status_code == 200
        assert download.mimetype == "text/markdown"
        assert b"Answer for vision" in download.data

        res = client.get("/api/v1/projects/proj-1/modules/vision-problem/documents")
        assert [d["id"] for d in res.get_json()] == [result["document_id"]]

        res = client.get(f"/api/v1/documents/{result['document_id']}/url")
        assert res.status_code == 200
        assert res.get_json()["url"].startswith("/api/v1/files/")

        assert client.delete(f"/api/v1/documents/{result['document_id']}").status_code == 204
        assert client.get(result["url"]).status_code == 404

    def test_failed_generation_is_422_with_document(self, client):
        module = _create_module(client)
        res = client.post(f"/api/v1/modules/{module['id']}/documents", json={
            "generation": {"format": "md"},
        })
        assert res.status_code == 422
        result = res.get_json()
        assert result["status"] == "failed"
        assert result["document_id"]

        res = client.get(f"/api/v1/documents/{result['document_id']}")
        assert res.get_json()["status"] == "failed"
        res = client.get(f"/api/v1/documents/{result['document_id']}/url")
        assert res.status_code == 404

    def test_require_complete(self, client, templates):
        module = _create_module(client)
        res = client.post(f"/api/v1/modules/{module['id']}/documents", json={
            "generation": {"format": "md"}, "require_complete": True,
        })
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_STATE"
        assert Document.query.count() == 0

    def test_bad_format(self, client):
        module = _create_module(client)
        res = client.post(f"/api/v1/modules/{module['id']}/documents", json={
            "generation": {"format": "odt"},
        })
        assert res.status_code == 422

    @pytest.mark.parametrize("body", [
        {"generation": "md"},
        {"generation": True},
        {"enrichment": ["market"]},
        {"generation": {"format": "md", "custom_data": "x"}},
        {"project_data": "Acme"},
    ])
    def test_non_object_options_are_rejected(self, client, body):
        module = _create_module(client)
        res = client.post(f"/api/v1/modules/{module['id']}/documents", json=body)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
        assert Document.query.count() == 0

    def test_unknown_module(self, client):
        res = client.post("/api/v1/modules/missing/documents", json={})
        assert res.status_code == 404

    def test_invalid_expiry(self, client):
        res = client.get("/api/v1/documents/missing/url?expires_in=0")
        assert res.status_code == 400

    @pytest.mark.parametrize("token", ["garbage", "a.b.c"])
    def test_bad_download_token(self, client, token):
        assert client.get(f"/api/v1/files/{token}").status_code == 404
