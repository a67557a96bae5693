"""
Repositories Package - Assessment Engine
assessment_engine/repositories/__init__.py

Data access layer for Snowflake database operations.
"""

from assessment_engine.repositories.base import BaseRepository
from assessment_engine.repositories.aggregate_repository import AggregateRepository
from assessment_engine.repositories.artifact_repository import ArtifactRepository
from assessment_engine.repositories.episode_repository import EpisodeRepository
from assessment_engine.repositories.graph_repository import GraphRepository
from assessment_engine.repositories.session_repository import SessionRepository

__all__ = [
    "BaseRepository",
    "AggregateRepository",
    "ArtifactRepository",
    "EpisodeRepository",
    "GraphRepository",
    "SessionRepository",
]
