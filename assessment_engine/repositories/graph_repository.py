"""
Navigation Graph Repository - Assessment Engine
assessment_engine/repositories/graph_repository.py

Data access layer for published questionnaire graphs.
"""

from typing import Any, Dict, List, Optional

from assessment_engine.core.exceptions import DuplicateEntityException
from assessment_engine.models.questionnaire import NavigationGraph
from assessment_engine.repositories.base import BaseRepository


class GraphRepository(BaseRepository):
    """Repository for NavigationGraph storage. Graphs are insert-only."""

    TABLE_NAME = "NAVIGATION_GRAPHS"

    def create(self, graph: NavigationGraph) -> NavigationGraph:
        """
        Store a graph definition.

        Raises:
            DuplicateEntityException: if a graph with the same id exists
        """
        sql = """
            INSERT INTO NAVIGATION_GRAPHS (ID, TITLE, DEFINITION, TAGS, IS_ACTIVE, CREATED_AT)
            SELECT %s, %s, PARSE_JSON(%s), PARSE_JSON(%s), %s, %s
            WHERE NOT EXISTS (SELECT 1 FROM NAVIGATION_GRAPHS WHERE ID = %s)
        """
        params = (
            graph.id,
            graph.title,
            graph.model_dump_json(),
            self.to_variant(graph.tags),
            graph.is_active,
            graph.created_at,
            graph.id,
        )
        if not self.execute_conditional(sql, params):
            raise DuplicateEntityException(f"Navigation graph {graph.id} already exists")
        return graph

    def get_by_id(self, graph_id: str) -> Optional[NavigationGraph]:
        sql = """
            SELECT ID, DEFINITION, IS_ACTIVE
            FROM NAVIGATION_GRAPHS
            WHERE ID = %s
        """
        row = self.execute_query(sql, (graph_id,), fetch_one=True)
        if not row:
            return None
        return self._row_to_graph(row)

    def list_all(self, active_only: bool = False) -> List[NavigationGraph]:
        sql = "SELECT ID, DEFINITION, IS_ACTIVE FROM NAVIGATION_GRAPHS"
        if active_only:
            sql += " WHERE IS_ACTIVE = TRUE"
        sql += " ORDER BY CREATED_AT DESC"
        rows = self.execute_query(sql, fetch_all=True) or []
        return [self._row_to_graph(row) for row in rows]

    def _row_to_graph(self, row: Dict[str, Any]) -> NavigationGraph:
        definition = self.from_variant(row["DEFINITION"], {})
        definition["is_active"] = bool(row["IS_ACTIVE"])
        return NavigationGraph.model_validate(definition)
