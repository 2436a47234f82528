"""Pydantic request and response schemas for the Usage Engine API.

Request schemas only check shape and types; vector lengths, finiteness and
label ranges are validated by the engine itself so the same rules apply to
HTTP and in-process callers.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class SampleRequest(BaseModel):
    """Request body for processing one activity sample."""

    features: list[float] = Field(min_length=1, description="Feature vector in the configured layout")
    observation: list[float] | None = Field(
        default=None,
        description="Raw SPC observation; derived from the feature vector's SPC channels if omitted",
    )
    label: int | None = Field(
        default=None,
        description="Optional true label (0 productive, 1 neutral, 2 overuse) to train the tree with",
    )


class PredictRequest(BaseModel):
    """Request body for a tree-only prediction."""

    features: list[float] = Field(min_length=1, description="Feature vector in the configured layout")


class FeedbackRequest(BaseModel):
    """Request body for a user-corrected label."""

    features: list[float] = Field(min_length=1, description="Feature vector the correction applies to")
    label: int = Field(description="Corrected class label")
    observation: list[float] | None = Field(
        default=None,
        description="Raw SPC observation; derived from the feature vector if omitted",
    )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class VoteResponse(BaseModel):
    """Fused ensemble decision."""

    model_config = ConfigDict(frozen=True)

    vote: int = Field(description="1 (neutral) or 2 (overuse)")
    confidence: float = Field(ge=0.0, le=1.0)
    spc_vote: int
    tree_vote: int
    tree_vote_remapped: int


class TrainResponse(BaseModel):
    """Tree training outcome."""

    model_config = ConfigDict(frozen=True)

    drift: bool
    accuracy: float
    split_count: int
    depth: int


class SampleResponse(BaseModel):
    """Response for a processed sample."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    vote: VoteResponse
    train: TrainResponse | None = None


class PredictionResponse(BaseModel):
    """Tree prediction for one feature vector."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    label: int
    confidence: float
    distribution: list[float]


class FeedbackResponse(BaseModel):
    """Effect of one feedback event on the ensemble."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    spc_correct: bool
    tree_correct: bool
    train: TrainResponse
    weights_updated: bool
    spc_weight: float
    tree_weight: float


class StatsResponse(BaseModel):
    """Statistics of every engine component."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    tree: dict[str, Any]
    spc: dict[str, Any]
    voter: dict[str, Any]
    pending_notifications: int | None = None


class ModelLoadResponse(BaseModel):
    """Summary of a loaded tree."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    instances_seen: int
    depth: int
    leaf_count: int


class NotificationResponse(BaseModel):
    """One pending overuse notification request."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    vote: int
    confidence: float
    spc_vote: int
    tree_vote: int
    tree_vote_remapped: int
    requested_at: datetime


class NotificationListResponse(BaseModel):
    """Notification requests drained from a subject's outbox."""

    model_config = ConfigDict(frozen=True)

    items: list[NotificationResponse]
    total: int = Field(ge=0)
