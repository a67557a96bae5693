"""
Navigation Graph Service - Assessment Engine
assessment_engine/services/graph_service.py

Publishes and loads questionnaire graphs. Published graphs are immutable, so
loads go through Redis when it is available.
"""

import logging
from typing import List

from assessment_engine.core.exceptions import (
    ConflictError,
    DuplicateEntityException,
    GraphDefinitionError,
    NotFoundError,
)
from assessment_engine.models.questionnaire import GraphSummary, NavigationGraph
from assessment_engine.repositories.graph_repository import GraphRepository
from assessment_engine.services.cache import TTL_GRAPH, get_cache, graph_key

logger = logging.getLogger(__name__)


class GraphService:
    def __init__(self, graph_repo: GraphRepository):
        self.graph_repo = graph_repo

    def publish(self, graph: NavigationGraph) -> NavigationGraph:
        """
        Validate and store a graph.

        Raises:
            GraphDefinitionError: structural invariants violated
            ConflictError: a graph with this id is already published
        """
        problems = graph.structural_problems()
        if problems:
            logger.warning("Rejected graph definition", extra={"graph_id": graph.id, "problems": problems})
            raise GraphDefinitionError(graph.id, problems)

        try:
            self.graph_repo.create(graph)
        except DuplicateEntityException as e:
            raise ConflictError(e.message, details={"graph_id": graph.id})

        logger.info(
            "Published navigation graph",
            extra={"graph_id": graph.id, "questions": len(graph.questions), "tags": graph.tags},
        )
        return graph

    def get_graph(self, graph_id: str) -> NavigationGraph:
        """Load a graph by id. Raises NotFoundError."""
        cache = get_cache()
        if cache:
            try:
                cached = cache.get(graph_key(graph_id), NavigationGraph)
                if cached:
                    return cached
            except Exception as e:
                logger.warning(f"Graph cache read failed: {e}")

        graph = self.graph_repo.get_by_id(graph_id)
        if graph is None:
            raise NotFoundError("NavigationGraph", graph_id)

        if cache:
            try:
                cache.set(graph_key(graph_id), graph, TTL_GRAPH)
            except Exception as e:
                logger.warning(f"Graph cache write failed: {e}")
        return graph

    def list_graphs(self, active_only: bool = False) -> List[GraphSummary]:
        return [
            GraphSummary(
                id=g.id,
                title=g.title,
                question_count=len(g.questions),
                tags=g.tags,
                is_active=g.is_active,
            )
            for g in self.graph_repo.list_all(active_only=active_only)
        ]

