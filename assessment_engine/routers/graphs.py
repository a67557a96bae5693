"""
Navigation Graph Router - Assessment Engine
assessment_engine/routers/graphs.py

Publish and read questionnaire graphs.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status

from assessment_engine.core.dependencies import get_graph_service
from assessment_engine.models.questionnaire import GraphSummary, NavigationGraph
from assessment_engine.routers.common import error_responses
from assessment_engine.services.graph_service import GraphService

router = APIRouter(prefix="/api/v1/graphs", tags=["Graphs"])


@router.post(
    "",
    response_model=NavigationGraph,
    status_code=status.HTTP_201_CREATED,
    responses={
        **error_responses(400, 409, 500),
        422: {
            "description": "Invalid graph definition",
            "content": {
                "application/json": {
                    "example": {
                        "error_code": "INVALID_GRAPH",
                        "message": "Navigation graph onboarding is invalid: start_question_id 'q0' does not exist",
                        "details": {
                            "graph_id": "onboarding",
                            "problems": ["start_question_id 'q0' does not exist"],
                        },
                        "timestamp": "2026-01-28T12:00:00Z",
                    }
                }
            },
        },
    },
    summary="Publish a navigation graph",
    description="Validates the graph (unique ids, existing start/end/branch targets, valid patterns) and stores it. Published graphs are immutable.",
)
async def publish_graph(
    payload: NavigationGraph,
    graph_service: GraphService = Depends(get_graph_service),
) -> NavigationGraph:
    return graph_service.publish(payload)


@router.get(
    "",
    response_model=List[GraphSummary],
    responses=error_responses(500),
    summary="List navigation graphs",
)
async def list_graphs(
    active_only: bool = Query(default=False),
    graph_service: GraphService = Depends(get_graph_service),
) -> List[GraphSummary]:
    return graph_service.list_graphs(active_only=active_only)


@router.get(
    "/{graph_id}",
    response_model=NavigationGraph,
    responses=error_responses(404, 500),
    summary="Get navigation graph by ID",
)
async def get_graph(
    graph_id: str,
    graph_service: GraphService = Depends(get_graph_service),
) -> NavigationGraph:
    return graph_service.get_graph(graph_id)
