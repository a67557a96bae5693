# tests/test_api.py

"""
API Endpoint Tests - Tests for all FastAPI endpoints
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from uuid import uuid4

import pytest
from fastapi import status

from assessment_engine.models.enumerations import SessionStatus
from assessment_engine.models.scoring import NarrativeArtifact
from assessment_engine.models.session import Session
from assessment_engine.services.background import DeadLetter

from fakes import ANALYZER_REPLY, branching_graph, disc_graph, linear_graph

NOTES = "Raised the release blocker early and volunteered to own the data migration."


def assert_error(response, status_code, error_code):
    assert response.status_code == status_code
    body = response.json()
    assert body["error_code"] == error_code
    assert "message" in body
    assert "timestamp" in body
    return body


def publish(client, graph):
    response = client.post("/api/v1/graphs", json=graph.model_dump(mode="json"))
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


def start(client, graph_id, **extra):
    response = client.post("/api/v1/sessions", json={"graph_id": graph_id, **extra})
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


# ROOT AND HEALTH


class TestRootEndpoint:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "running"
        assert data["docs"]["swagger"] == "/docs"


def patch_checks(snowflake="healthy (schema: ENGINE)", redis="healthy", llm="healthy (gateway)"):
    return (
        patch("assessment_engine.routers.health.check_snowflake", return_value=snowflake),
        patch("assessment_engine.routers.health.check_redis", return_value=redis),
        patch("assessment_engine.routers.health.check_llm_gateway", return_value=llm),
    )


class TestHealthEndpoint:

    def test_all_healthy(self, client):
        sf, rd, llm = patch_checks()
        with sf, rd, llm:
            response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["dependencies"]) == {"snowflake", "redis", "llm_gateway"}
        assert data["background"]["pending_jobs"] == 0

    def test_cache_outage_only_degrades(self, client):
        sf, rd, llm = patch_checks(redis="unhealthy: refused")
        with sf, rd, llm:
            response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "degraded"

    def test_store_outage_is_unavailable(self, client):
        sf, rd, llm = patch_checks(snowflake="unhealthy: timeout")
        with sf, rd, llm:
            response = client.get("/health")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["status"] == "unhealthy"

    def test_single_dependency(self, client):
        sf, rd, llm = patch_checks(llm="unhealthy: LLM_API_KEY not set")
        with sf, rd, llm:
            data = client.get("/health/llm_gateway").json()

        assert data["service"] == "llm_gateway"
        assert data["is_healthy"] is False

    def test_unknown_dependency(self, client):
        assert_error(client.get("/health/kafka"), 404, "NOT_FOUND")


# GRAPH ENDPOINTS


class TestGraphEndpoints:
    """Tests for /api/v1/graphs."""

    def test_publish_and_get(self, client):
        data = publish(client, branching_graph())
        assert data["id"] == "branching"

        response = client.get("/api/v1/graphs/branching")
        assert response.status_code == status.HTTP_200_OK
        assert [q["id"] for q in response.json()["questions"]][0] == "q1"

    def test_duplicate_graph(self, client):
        publish(client, linear_graph(2))
        response = client.post("/api/v1/graphs", json=linear_graph(2).model_dump(mode="json"))
        assert_error(response, status.HTTP_409_CONFLICT, "CONFLICT")

    def test_structural_problem(self, client):
        payload = linear_graph(2).model_dump(mode="json")
        payload["start_question_id"] = "q0"

        body = assert_error(client.post("/api/v1/graphs", json=payload), 422, "INVALID_GRAPH")
        assert body["details"]["graph_id"] == "linear"
        assert any("q0" in p for p in body["details"]["problems"])

    def test_unknown_question_type(self, client):
        payload = linear_graph(1).model_dump(mode="json")
        payload["questions"][0]["type"] = "slider"
        assert_error(client.post("/api/v1/graphs", json=payload), 422, "VALIDATION_ERROR")

    def test_malformed_json(self, client):
        response = client.post(
            "/api/v1/graphs",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert_error(response, status.HTTP_400_BAD_REQUEST, "INVALID_REQUEST")

    def test_list_active_only(self, client):
        publish(client, linear_graph(1, graph_id="live"))
        publish(client, linear_graph(1, graph_id="retired", is_active=False))

        all_ids = {g["id"] for g in client.get("/api/v1/graphs").json()}
        active_ids = {g["id"] for g in client.get("/api/v1/graphs", params={"active_only": True}).json()}

        assert all_ids == {"live", "retired"}
        assert active_ids == {"live"}

    def test_unknown_graph(self, client):
        body = assert_error(client.get("/api/v1/graphs/nope"), 404, "NOT_FOUND")
        assert body["details"]["entity_id"] == "nope"


# SESSION ENDPOINTS


class TestSessionEndpoints:
    """Tests for /api/v1/sessions."""

    def test_start_returns_first_question(self, client):
        publish(client, linear_graph(3))
        data = start(client, "linear", subject_id="emp-1")

        assert data["status"] == "started"
        assert data["question"]["id"] == "q1"
        assert data["progress"]["current"] == 0
        assert data["completed"] is False

    def test_start_unknown_graph(self, client):
        assert_error(client.post("/api/v1/sessions", json={"graph_id": "nope"}), 404, "NOT_FOUND")

    def test_start_inactive_graph(self, client):
        publish(client, linear_graph(1, is_active=False))
        assert_error(client.post("/api/v1/sessions", json={"graph_id": "linear"}), 409, "CONFLICT")

    def test_start_requires_graph_id(self, client):
        body = assert_error(client.post("/api/v1/sessions", json={}), 422, "VALIDATION_ERROR")
        assert body["message"] == "Graph ID is required"

    def test_walk_to_completion(self, client):
        publish(client, linear_graph(2))
        session_id = start(client, "linear")["session_id"]

        step = client.post(f"/api/v1/sessions/{session_id}/answers", json={"question_id": "q1", "value": "first"})
        assert step.status_code == status.HTTP_200_OK
        assert step.json()["question"]["id"] == "q2"
        assert step.json()["status"] == "in_progress"

        done = client.post(f"/api/v1/sessions/{session_id}/answers", json={"question_id": "q2", "value": "second"})
        data = done.json()
        assert data["completed"] is True
        assert data["question"] is None
        assert data["progress"]["percentage"] == 100

        session = client.get(f"/api/v1/sessions/{session_id}").json()
        assert session["status"] == "completed"
        assert [a["value"] for a in session["answers"]] == ["first", "second"]

    def test_branching_follows_rating(self, client):
        publish(client, branching_graph())
        session_id = start(client, "branching")["session_id"]

        step = client.post(f"/api/v1/sessions/{session_id}/answers", json={"question_id": "q1", "value": 5})
        assert step.json()["question"]["id"] == "q_high"

    def test_disc_session_is_reconciled(self, client):
        publish(client, disc_graph())
        session_id = start(client, "disc", subject_id="emp-1")["session_id"]

        for question_id, value in (("d1", "lead"), ("d2", "tasks"), ("d3", "Set the plan and drove it home")):
            response = client.post(
                f"/api/v1/sessions/{session_id}/answers",
                json={"question_id": question_id, "value": value},
            )
            assert response.status_code == status.HTTP_200_OK

        metadata = client.get(f"/api/v1/sessions/{session_id}").json()["metadata"]
        assert metadata["reconciliation"]["status"] == "completed"
        assert metadata["disc"]["counts"]["D"] >= 1

    def test_wrong_question(self, client):
        publish(client, linear_graph(2))
        session_id = start(client, "linear")["session_id"]

        response = client.post(f"/api/v1/sessions/{session_id}/answers", json={"question_id": "q2", "value": "x"})
        assert_error(response, status.HTTP_409_CONFLICT, "CONFLICT")

    def test_invalid_answer_leaves_session_unchanged(self, client):
        publish(client, linear_graph(2))
        session_id = start(client, "linear")["session_id"]

        response = client.post(f"/api/v1/sessions/{session_id}/answers", json={"question_id": "q1", "value": "  "})
        body = assert_error(response, 422, "VALIDATION_ERROR")
        assert body["details"]["question_id"] == "q1"
        assert body["details"]["errors"]

        resumed = client.get(f"/api/v1/sessions/{session_id}/resume").json()
        assert resumed["question"]["id"] == "q1"
        assert resumed["status"] == "started"

    def test_invalid_session_id(self, client):
        body = assert_error(client.get("/api/v1/sessions/not-a-uuid"), 422, "VALIDATION_ERROR")
        assert body["message"] == "Session ID must be a valid UUID format"

    def test_unknown_session(self, client):
        assert_error(client.get(f"/api/v1/sessions/{uuid4()}"), 404, "NOT_FOUND")

    def test_force_complete(self, client):
        publish(client, linear_graph(3))
        session_id = start(client, "linear")["session_id"]
        client.post(f"/api/v1/sessions/{session_id}/answers", json={"question_id": "q1", "value": "only"})

        data = client.post(f"/api/v1/sessions/{session_id}/complete").json()
        assert data["completed"] is True
        assert data["status"] == "completed"

        assert_error(client.get(f"/api/v1/sessions/{session_id}/resume"), 409, "CONFLICT")

    def test_abandon(self, client):
        publish(client, linear_graph(2))
        session_id = start(client, "linear")["session_id"]

        response = client.post(f"/api/v1/sessions/{session_id}/abandon")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "abandoned"

        assert_error(client.post(f"/api/v1/sessions/{session_id}/abandon"), 409, "CONFLICT")


# EPISODE ENDPOINTS


class TestEpisodeEndpoints:
    """Tests for /api/v1/episodes."""

    def test_submit_scores_episode(self, client, llm, aggregate_repo):
        llm.reply = ANALYZER_REPLY
        response = client.post(
            "/api/v1/episodes",
            json={"occasion_id": "1on1-001", "subject_id": "emp-1", "notes": NOTES},
        )
        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json()["occasion_id"] == "1on1-001"

        status_body = client.get("/api/v1/episodes/1on1-001/status").json()
        assert status_body["exists"] is True
        assert status_body["status"] == "completed"
        assert aggregate_repo.get("emp-1").episode_count == 1

    def test_duplicate_occasion(self, client, llm):
        llm.reply = ANALYZER_REPLY
        payload = {"occasion_id": "1on1-001", "subject_id": "emp-1", "notes": NOTES}
        client.post("/api/v1/episodes", json=payload)
        assert_error(client.post("/api/v1/episodes", json=payload), 409, "CONFLICT")

    def test_missing_subject(self, client):
        body = assert_error(client.post("/api/v1/episodes", json={"occasion_id": "o1"}), 422, "VALIDATION_ERROR")
        assert body["message"] == "Subject ID is required"

    def test_failed_episode_can_be_retried(self, client, llm):
        llm.reply = "not json at all"
        client.post("/api/v1/episodes", json={"occasion_id": "o1", "subject_id": "emp-1", "notes": NOTES})
        assert client.get("/api/v1/episodes/o1/status").json()["status"] == "failed"

        llm.reply = ANALYZER_REPLY
        response = client.post("/api/v1/episodes/o1/retry")
        assert response.status_code == status.HTTP_202_ACCEPTED
        assert client.get("/api/v1/episodes/o1/status").json()["status"] == "completed"

    def test_retry_unknown_occasion(self, client):
        assert_error(client.post("/api/v1/episodes/nope/retry"), 404, "NOT_FOUND")

    def test_status_of_unknown_occasion(self, client):
        data = client.get("/api/v1/episodes/nope/status").json()
        assert data["exists"] is False
        assert data["status"] is None


# SUBJECT PROFILE ENDPOINTS


class TestSubjectEndpoints:
    """Tests for /api/v1/subjects/{subject_id}."""

    def test_aggregate_missing(self, client):
        assert_error(client.get("/api/v1/subjects/emp-1/aggregate"), 404, "NOT_FOUND")

    def test_recompute_then_get(self, client):
        recomputed = client.post("/api/v1/subjects/emp-1/aggregate/recompute")
        assert recomputed.status_code == status.HTTP_200_OK
        assert recomputed.json()["episode_count"] == 0

        data = client.get("/api/v1/subjects/emp-1/aggregate").json()
        assert data["subject_id"] == "emp-1"
        assert all(v is None for v in data["scores"].values())

    def test_fingerprint_changes_with_activity(self, client, session_repo):
        before = client.get("/api/v1/subjects/emp-1/fingerprint").json()
        assert len(before["fingerprint"]) == 64

        session_repo.create(
            Session(graph_id="g", subject_id="emp-1", status=SessionStatus.COMPLETED, completed_at=datetime.now(timezone.utc))
        )
        after = client.get("/api/v1/subjects/emp-1/fingerprint").json()
        assert after["fingerprint"] != before["fingerprint"]

    def test_regeneration_check(self, client):
        data = client.get("/api/v1/subjects/emp-1/regeneration-check").json()
        assert data["needs_regeneration"] is True
        assert data["reason"] == "no_artifact"

    def test_narrative_missing(self, client):
        assert_error(client.get("/api/v1/subjects/emp-1/narrative"), 404, "NOT_FOUND")

    def test_regenerate_then_read(self, client, artifact_repo):
        response = client.post("/api/v1/subjects/emp-1/narrative/regenerate")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["reason"] == "up_to_date"

        narrative = client.get("/api/v1/subjects/emp-1/narrative").json()
        assert narrative["subject_id"] == "emp-1"
        assert artifact_repo.get("emp-1") is not None

    def test_forced_regeneration(self, client, artifact_repo, session_repo, composer):
        session_repo.create(
            Session(
                graph_id="disc",
                subject_id="emp-1",
                status=SessionStatus.COMPLETED,
                completed_at=datetime.now(timezone.utc) - timedelta(days=1),
                metadata={"disc": {"counts": {"D": 2, "I": 0, "S": 0, "C": 1}}},
            )
        )
        client.post("/api/v1/subjects/emp-1/narrative/regenerate")
        client.post("/api/v1/subjects/emp-1/narrative/regenerate", params={"force": True})

        assert len(composer.inputs) == 2
        assert artifact_repo.get("emp-1").content == composer.text


# MAINTENANCE ENDPOINTS


class TestMaintenanceEndpoints:
    """Tests for /api/v1/maintenance."""

    def test_sweep_with_default_threshold(self, client, session_repo):
        stale = datetime.now(timezone.utc) - timedelta(hours=30)
        session_repo.create(Session(graph_id="g", status=SessionStatus.IN_PROGRESS, last_activity_at=stale))

        data = client.post("/api/v1/maintenance/sweep-abandoned").json()
        assert data["abandoned"] == 1
        assert data["threshold_hours"] == 24

        assert client.post("/api/v1/maintenance/sweep-abandoned").json()["abandoned"] == 0

    def test_sweep_with_custom_threshold(self, client, session_repo):
        idle = datetime.now(timezone.utc) - timedelta(hours=3)
        session_repo.create(Session(graph_id="g", status=SessionStatus.STARTED, last_activity_at=idle))

        data = client.post("/api/v1/maintenance/sweep-abandoned", json={"threshold_hours": 2}).json()
        assert data["abandoned"] == 1
        assert data["threshold_hours"] == 2

    def test_sweep_rejects_non_positive_threshold(self, client):
        response = client.post("/api/v1/maintenance/sweep-abandoned", json={"threshold_hours": 0})
        body = assert_error(response, 422, "VALIDATION_ERROR")
        assert body["message"] == "Threshold must be greater than 0 hours"

    def test_dead_letters(self, client, runner):
        runner.dead_letters.append(DeadLetter(job="episode_scoring", error="boom", context={"occasion_id": "o1"}))
        runner.dead_letters.append(DeadLetter(job="narrative_regeneration", error="down", context={}))

        data = client.get("/api/v1/maintenance/dead-letters", params={"limit": 1}).json()
        assert [d["job"] for d in data] == ["narrative_regeneration"]

        assert len(client.get("/api/v1/maintenance/dead-letters").json()) == 2

    @pytest.mark.parametrize("limit", [0, 201])
    def test_dead_letter_limit_bounds(self, client, limit):
        response = client.get("/api/v1/maintenance/dead-letters", params={"limit": limit})
        assert_error(response, 422, "VALIDATION_ERROR")
