"""FastAPI router for the AumOS Usage Engine API.

All routes are thin: validate request bodies via Pydantic schemas, delegate
to the subject's UsageEngine, and return Pydantic response schemas. Engine
errors are translated to HTTP responses by the handlers installed in main.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Request, Response, status

from aumos_usage_engine.api.schemas import (
    FeedbackRequest,
    FeedbackResponse,
    ModelLoadResponse,
    NotificationListResponse,
    NotificationResponse,
    PredictionResponse,
    PredictRequest,
    SampleRequest,
    SampleResponse,
    StatsResponse,
    TrainResponse,
    VoteResponse,
)
from aumos_usage_engine.core.services import EngineRegistry
from aumos_usage_engine.observability import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Usage Engine"])


# ---------------------------------------------------------------------------
# Dependency helpers
# ---------------------------------------------------------------------------


def _registry(request: Request) -> EngineRegistry:
    """Return the application's engine registry.

    Args:
        request: FastAPI request (provides app.state).

    Returns:
        The EngineRegistry created at application startup.
    """
    return request.app.state.registry


# ---------------------------------------------------------------------------
# Classification endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/subjects/{subject_id}/samples",
    response_model=SampleResponse,
    summary="Process one activity sample",
)
async def process_sample(
    subject_id: str,
    body: SampleRequest,
    registry: EngineRegistry = Depends(_registry),
) -> SampleResponse:
    """Vote on a sample and train the tree if it carries a label.

    The subject's engine is created on first use, once the sample is accepted.

    Args:
        subject_id: Subject path parameter.
        body: Sample payload.
        registry: Injected engine registry.

    Returns:
        The fused vote and the optional training result.
    """
    with registry.engine_for(subject_id) as engine:
        result = engine.process_sample(body.features, observation=body.observation, label=body.label)
    return SampleResponse(
        subject_id=subject_id,
        vote=VoteResponse(**result.vote.to_dict()),
        train=TrainResponse(**result.train.to_dict()) if result.train is not None else None,
    )


@router.post(
    "/subjects/{subject_id}/predict",
    response_model=PredictionResponse,
    summary="Predict with the streaming tree",
)
async def predict(
    subject_id: str,
    body: PredictRequest,
    registry: EngineRegistry = Depends(_registry),
) -> PredictionResponse:
    """Return the tree's prediction without updating any model.

    Args:
        subject_id: Subject path parameter.
        body: Feature vector payload.
        registry: Injected engine registry.

    Returns:
        Predicted class, confidence and class distribution.
    """
    prediction = registry.get(subject_id).predict(body.features)
    return PredictionResponse(subject_id=subject_id, **prediction.to_dict())


@router.post(
    "/subjects/{subject_id}/feedback",
    response_model=FeedbackResponse,
    summary="Apply a corrected label",
)
async def feedback(
    subject_id: str,
    body: FeedbackRequest,
    registry: EngineRegistry = Depends(_registry),
) -> FeedbackResponse:
    """Score both models against a user-corrected label and train the tree.

    Args:
        subject_id: Subject path parameter.
        body: Feedback payload.
        registry: Injected engine registry.

    Returns:
        Correctness of each model and the current voting weights.
    """
    with registry.engine_for(subject_id) as engine:
        outcome = engine.feedback(body.features, body.label, observation=body.observation)
    data = outcome.to_dict()
    data["train"] = TrainResponse(**data["train"])
    return FeedbackResponse(subject_id=subject_id, **data)


# ---------------------------------------------------------------------------
# Engine state endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/subjects/{subject_id}/stats",
    response_model=StatsResponse,
    summary="Get engine statistics",
)
async def get_stats(
    subject_id: str,
    registry: EngineRegistry = Depends(_registry),
) -> StatsResponse:
    """Return tree, SPC and voter statistics for a subject."""
    return StatsResponse(**registry.get(subject_id).get_stats())


@router.get(
    "/subjects/{subject_id}/model",
    summary="Export the streaming tree",
)
async def export_model(
    subject_id: str,
    registry: EngineRegistry = Depends(_registry),
) -> dict[str, Any]:
    """Return the serialised tree for the host to persist."""
    return registry.get(subject_id).export_model()


@router.put(
    "/subjects/{subject_id}/model",
    response_model=ModelLoadResponse,
    summary="Load a previously exported tree",
)
async def load_model(
    subject_id: str,
    payload: dict[str, Any] = Body(...),
    registry: EngineRegistry = Depends(_registry),
) -> ModelLoadResponse:
    """Replace the subject's tree with an exported one.

    Args:
        subject_id: Subject path parameter.
        payload: Output of the export endpoint.
        registry: Injected engine registry.

    Returns:
        Size summary of the loaded tree.
    """
    with registry.engine_for(subject_id) as engine:
        engine.load_model(payload)
    return ModelLoadResponse(
        subject_id=subject_id,
        instances_seen=engine.tree.instances_seen,
        depth=engine.tree.depth,
        leaf_count=engine.tree.leaf_count,
    )


@router.get(
    "/subjects/{subject_id}/notifications",
    response_model=NotificationListResponse,
    summary="Drain pending notification requests",
)
async def drain_notifications(
    subject_id: str,
    registry: EngineRegistry = Depends(_registry),
) -> NotificationListResponse:
    """Remove and return the subject's pending overuse notifications."""
    requests = registry.get(subject_id).drain_notifications()
    return NotificationListResponse(
        items=[NotificationResponse(**r.to_dict()) for r in requests],
        total=len(requests),
    )


@router.delete(
    "/subjects/{subject_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Drop a subject's engine",
)
async def drop_subject(
    subject_id: str,
    registry: EngineRegistry = Depends(_registry),
) -> Response:
    """Discard everything the engine learned for a subject."""
    registry.drop(subject_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
