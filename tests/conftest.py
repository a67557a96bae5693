# tests/conftest.py

"""
Pytest Fixtures - in-memory repositories, a scripted text-generation client
and the FastAPI test client wired to them.

Nothing here talks to Snowflake, Redis or a real gateway.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from assessment_engine.core import dependencies
from assessment_engine.main import app
from assessment_engine.services.aggregate_service import AggregateService
from assessment_engine.services.background import BackgroundTaskRunner, get_background_runner
from assessment_engine.services.behavior_analyzer import BehaviorAnalyzer
from assessment_engine.services.episode_service import EpisodeService
from assessment_engine.services.fingerprint_service import FingerprintService
from assessment_engine.services.graph_service import GraphService
from assessment_engine.services.narrative_service import NarrativeService
from assessment_engine.services.reconciliation_service import ReconciliationService
from assessment_engine.services.session_service import SessionService
from assessment_engine.shutdown import reset_shutdown

from fakes import (
    FakeComposer,
    FakeLLMClient,
    InMemoryAggregateRepository,
    InMemoryArtifactRepository,
    InMemoryEpisodeRepository,
    InMemoryGraphRepository,
    InMemorySessionRepository,
)


# =============================================================================
# ISOLATION
# =============================================================================

@pytest.fixture(autouse=True)
def no_redis():
    """Services run uncached; the shutdown flag starts cleared."""
    reset_shutdown()
    with patch("assessment_engine.services.graph_service.get_cache", return_value=None), \
         patch("assessment_engine.services.aggregate_service.get_cache", return_value=None):
        yield
    reset_shutdown()


# =============================================================================
# REPOSITORIES
# =============================================================================

@pytest.fixture
def graph_repo():
    return InMemoryGraphRepository()


@pytest.fixture
def session_repo():
    return InMemorySessionRepository()


@pytest.fixture
def episode_repo():
    return InMemoryEpisodeRepository()


@pytest.fixture
def aggregate_repo():
    return InMemoryAggregateRepository()


@pytest.fixture
def artifact_repo():
    return InMemoryArtifactRepository()


# =============================================================================
# COLLABORATORS
# =============================================================================

@pytest.fixture
def llm():
    """Text-generation double; tests set ``llm.reply`` as needed."""
    return FakeLLMClient(reply="D")


@pytest.fixture
def composer():
    return FakeComposer()


# =============================================================================
# SERVICES
# =============================================================================

@pytest.fixture
def graph_service(graph_repo):
    return GraphService(graph_repo)


@pytest.fixture
def fingerprint_service(session_repo, episode_repo, artifact_repo):
    return FingerprintService(session_repo, episode_repo, artifact_repo)


@pytest.fixture
def aggregate_service(episode_repo, aggregate_repo):
    return AggregateService(episode_repo, aggregate_repo)


@pytest.fixture
def narrative_service(fingerprint_service, session_repo, episode_repo, aggregate_repo, artifact_repo, composer):
    return NarrativeService(
        fingerprints=fingerprint_service,
        session_repo=session_repo,
        episode_repo=episode_repo,
        aggregate_repo=aggregate_repo,
        artifact_repo=artifact_repo,
        composer=composer,
    )


@pytest.fixture
def reconciliation(session_repo, llm):
    return ReconciliationService(session_repo, llm)


@pytest.fixture
def session_service(graph_service, session_repo, reconciliation):
    """No background runner: completion only reconciles."""
    return SessionService(
        graph_service=graph_service,
        session_repo=session_repo,
        reconciliation=reconciliation,
    )


@pytest.fixture
def episode_service(episode_repo, llm, aggregate_service, narrative_service):
    """No background runner: scoring runs inline inside submit."""
    return EpisodeService(
        episode_repo=episode_repo,
        analyzer=BehaviorAnalyzer(llm, model="fake-episode-model"),
        aggregates=aggregate_service,
        narrative=narrative_service,
    )


@pytest.fixture
def runner():
    return BackgroundTaskRunner(dead_letter_capacity=5)


# =============================================================================
# FASTAPI TEST CLIENT FIXTURE
# =============================================================================

@pytest.fixture
def client(
    graph_service,
    session_service,
    episode_service,
    aggregate_service,
    fingerprint_service,
    narrative_service,
    artifact_repo,
    runner,
):
    """TestClient with every service dependency pointed at the in-memory doubles."""
    app.dependency_overrides = {
        dependencies.get_graph_service: lambda: graph_service,
        dependencies.get_session_service: lambda: session_service,
        dependencies.get_episode_service: lambda: episode_service,
        dependencies.get_aggregate_service: lambda: aggregate_service,
        dependencies.get_fingerprint_service: lambda: fingerprint_service,
        dependencies.get_narrative_service: lambda: narrative_service,
        dependencies.get_artifact_repository: lambda: artifact_repo,
        get_background_runner: lambda: runner,
    }
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides = {}
