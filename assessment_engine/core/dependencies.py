"""
Dependencies - Assessment Engine
assessment_engine/core/dependencies.py

FastAPI dependency injection for repositories and services.
"""

from functools import lru_cache

from assessment_engine.repositories.aggregate_repository import AggregateRepository
from assessment_engine.repositories.artifact_repository import ArtifactRepository
from assessment_engine.repositories.episode_repository import EpisodeRepository
from assessment_engine.repositories.graph_repository import GraphRepository
from assessment_engine.repositories.session_repository import SessionRepository
from assessment_engine.services.aggregate_service import AggregateService
from assessment_engine.services.background import get_background_runner
from assessment_engine.services.behavior_analyzer import BehaviorAnalyzer
from assessment_engine.services.episode_service import EpisodeService
from assessment_engine.services.fingerprint_service import FingerprintService
from assessment_engine.services.graph_service import GraphService
from assessment_engine.services.llm_client import get_llm_client
from assessment_engine.services.narrative_service import LLMNarrativeComposer, NarrativeService
from assessment_engine.services.reconciliation_service import ReconciliationService
from assessment_engine.services.session_service import SessionService


# ---- Repositories ----

@lru_cache()
def get_graph_repository() -> GraphRepository:
    """Get cached GraphRepository instance."""
    return GraphRepository()


@lru_cache()
def get_session_repository() -> SessionRepository:
    """Get cached SessionRepository instance."""
    return SessionRepository()


@lru_cache()
def get_episode_repository() -> EpisodeRepository:
    """Get cached EpisodeRepository instance."""
    return EpisodeRepository()


@lru_cache()
def get_aggregate_repository() -> AggregateRepository:
    """Get cached AggregateRepository instance."""
    return AggregateRepository()


@lru_cache()
def get_artifact_repository() -> ArtifactRepository:
    """Get cached ArtifactRepository instance."""
    return ArtifactRepository()


# ---- Services ----

@lru_cache()
def get_graph_service() -> GraphService:
    return GraphService(get_graph_repository())


@lru_cache()
def get_fingerprint_service() -> FingerprintService:
    return FingerprintService(get_session_repository(), get_episode_repository(), get_artifact_repository())


@lru_cache()
def get_aggregate_service() -> AggregateService:
    return AggregateService(get_episode_repository(), get_aggregate_repository())


@lru_cache()
def get_narrative_service() -> NarrativeService:
    # One instance per process so the in-flight set is shared
    return NarrativeService(
        fingerprints=get_fingerprint_service(),
        session_repo=get_session_repository(),
        episode_repo=get_episode_repository(),
        aggregate_repo=get_aggregate_repository(),
        artifact_repo=get_artifact_repository(),
        composer=LLMNarrativeComposer(get_llm_client()),
    )


@lru_cache()
def get_session_service() -> SessionService:
    return SessionService(
        graph_service=get_graph_service(),
        session_repo=get_session_repository(),
        reconciliation=ReconciliationService(get_session_repository(), get_llm_client()),
        background=get_background_runner(),
        narrative=get_narrative_service(),
    )


@lru_cache()
def get_episode_service() -> EpisodeService:
    return EpisodeService(
        episode_repo=get_episode_repository(),
        analyzer=BehaviorAnalyzer(get_llm_client()),
        aggregates=get_aggregate_service(),
        background=get_background_runner(),
        narrative=get_narrative_service(),
    )
