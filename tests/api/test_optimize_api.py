"""Tests for the optimization endpoints.

Covers:
- POST /api/optimize/code: auth, usage counting, 413 before any generator call, 429 at limit
- POST /api/optimize/batch: Pro gate (closed while past_due), single quota unit, skipped files
- GET /api/optimize/history: Pro gate (closed while past_due), newest first
"""

import pytest

from optimizecode.domain.plans import Plan, SubscriptionStatus

pytestmark = pytest.mark.integration

JS = "var a = 1;\nvar b = 2;\nconsole.log(a + b);\n"


# ---------------------------------------------------------------------------
# Single snippet
# ---------------------------------------------------------------------------


class TestOptimizeCode:
    def test_requires_auth(self, api_client) -> None:
        response = api_client.post("/api/optimize/code", json={"code": JS})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "unauthorized"
        assert "debug_id" in response.json()

    def test_invalid_token(self, api_client) -> None:
        response = api_client.post(
            "/api/optimize/code", json={"code": JS}, headers={"Authorization": "Bearer forged"}
        )

        assert response.status_code == 401

    def test_success(self, api_client, auth_headers, generator, read_profile) -> None:
        response = api_client.post(
            "/api/optimize/code",
            json={"code": JS, "optimization_type": "readability"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["original"] == JS
        assert body["optimized"] == f"// optimized\n{JS}"
        assert body["language"] == "javascript"
        assert body["optimization_type"] == "readability"
        assert body["engine"] == "ai"
        assert set(body["insights"]) >= {"lines_reduced", "size_reduction", "improvements", "performance_gain"}
        assert generator.calls[0]["optimization_type"] == "readability"
        assert read_profile().usage.optimizations_today == 1

    def test_oversized_code_is_413_without_generation(
        self, api_client, auth_headers, generator, seed_demo_profile, read_profile
    ) -> None:
        seed_demo_profile(used_today=2)

        response = api_client.post("/api/optimize/code", json={"code": "x" * 10_001}, headers=auth_headers)

        assert response.status_code == 413
        detail = response.json()["detail"]
        assert detail["code"] == "content_too_large"
        assert detail["current_size"] == 10_001
        assert detail["max_size"] == 10_000
        assert generator.calls == []
        assert read_profile().usage.optimizations_today == 2

    def test_limit_reached_is_429(self, api_client, auth_headers, generator, seed_demo_profile) -> None:
        seed_demo_profile(used_today=10)

        response = api_client.post("/api/optimize/code", json={"code": JS}, headers=auth_headers)

        assert response.status_code == 429
        detail = response.json()["detail"]
        assert detail["code"] == "usage_limit_exceeded"
        assert detail["used"] == 10
        assert detail["limit"] == 10
        assert detail["upgrade_required"] is True
        assert generator.calls == []

    def test_last_slot_then_429(self, api_client, auth_headers, seed_demo_profile, read_profile) -> None:
        seed_demo_profile(used_today=9)

        first = api_client.post("/api/optimize/code", json={"code": JS}, headers=auth_headers)
        second = api_client.post("/api/optimize/code", json={"code": JS}, headers=auth_headers)

        assert first.status_code == 200
        assert second.status_code == 429
        assert read_profile().usage.optimizations_today == 10

    def test_generator_failure_degrades(self, api_client, auth_headers, generator, read_profile) -> None:
        generator.exc = RuntimeError("provider down")

        response = api_client.post("/api/optimize/code", json={"code": JS}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["engine"] == "fallback"
        assert body["fallback_reason"] == "generator_error"
        assert body["optimized"].startswith("const a = 1;")
        assert read_profile().usage.optimizations_today == 1

    def test_empty_code_is_400(self, api_client, auth_headers) -> None:
        response = api_client.post("/api/optimize/code", json={"code": ""}, headers=auth_headers)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "validation_error"
        assert detail["errors"][0]["field"] == "code"

    def test_unknown_optimization_type_is_400(self, api_client, auth_headers) -> None:
        response = api_client.post(
            "/api/optimize/code", json={"code": JS, "optimization_type": "golf"}, headers=auth_headers
        )

        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


def _files(*paths: str) -> list[dict]:
    return [{"name": p.rsplit("/", 1)[-1], "path": p, "content": "const x = 1;\n"} for p in paths]


class TestOptimizeBatch:
    def test_free_plan_is_403(self, api_client, auth_headers, generator) -> None:
        response = api_client.post(
            "/api/optimize/batch", json={"files": _files("src/a.js")}, headers=auth_headers
        )

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["code"] == "plan_required"
        assert detail["current_plan"] == "free"
        assert detail["required_plan"] == "pro"
        assert detail["upgrade_url"] == "/pricing"
        assert generator.calls == []

    def test_past_due_pro_is_403(self, api_client, auth_headers, seed_demo_profile, generator) -> None:
        seed_demo_profile(plan=Plan.PRO, status=SubscriptionStatus.PAST_DUE)

        response = api_client.post(
            "/api/optimize/batch", json={"files": _files("src/a.js")}, headers=auth_headers
        )

        assert response.status_code == 403
        assert response.json()["detail"]["current_plan"] == "free"
        assert generator.calls == []

    def test_pro_batch(self, api_client, auth_headers, seed_demo_profile, read_profile) -> None:
        seed_demo_profile(plan=Plan.PRO)

        response = api_client.post(
            "/api/optimize/batch",
            json={"files": _files("src/a.js", "src/b.ts", "package.json")},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total_files"] == 2
        assert [r["file_path"] for r in body["results"]] == ["src/a.js", "src/b.ts"]
        assert body["skipped"] == [
            {"file_name": "package.json", "file_path": "package.json", "reason": "unsupported_type"}
        ]
        assert body["batch_insights"]["languages_processed"] == ["javascript", "typescript"]
        assert read_profile().usage.optimizations_today == 1

    def test_empty_files_is_400(self, api_client, auth_headers, seed_demo_profile) -> None:
        seed_demo_profile(plan=Plan.PRO)

        response = api_client.post("/api/optimize/batch", json={"files": []}, headers=auth_headers)

        assert response.status_code == 400

    def test_more_than_fifty_files_is_400(self, api_client, auth_headers, seed_demo_profile) -> None:
        seed_demo_profile(plan=Plan.UNLEASHED)
        files = _files(*(f"src/f{i}.js" for i in range(51)))

        response = api_client.post("/api/optimize/batch", json={"files": files}, headers=auth_headers)

        assert response.status_code == 400


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class TestHistory:
    def test_free_plan_is_403(self, api_client, auth_headers) -> None:
        response = api_client.get("/api/optimize/history", headers=auth_headers)

        assert response.status_code == 403

    def test_past_due_pro_is_403(self, api_client, auth_headers, seed_demo_profile) -> None:
        seed_demo_profile(plan=Plan.PRO, status=SubscriptionStatus.PAST_DUE)

        response = api_client.get("/api/optimize/history", headers=auth_headers)

        assert response.status_code == 403
        assert response.json()["detail"]["current_plan"] == "free"

    def test_newest_first(self, api_client, auth_headers, seed_demo_profile) -> None:
        seed_demo_profile(plan=Plan.PRO)
        api_client.post("/api/optimize/code", json={"code": JS}, headers=auth_headers)
        api_client.post(
            "/api/optimize/code", json={"code": "x = 1\n", "filename": "main.py"}, headers=auth_headers
        )

        response = api_client.get("/api/optimize/history?limit=10", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert [r["language"] for r in body["history"]] == ["python", "javascript"]
        assert body["history"][0]["mode"] == "single"

    def test_limit_out_of_range_is_400(self, api_client, auth_headers, seed_demo_profile) -> None:
        seed_demo_profile(plan=Plan.PRO)

        response = api_client.get("/api/optimize/history?limit=500", headers=auth_headers)

        assert response.status_code == 400
