"""Usage Engine settings.

All values are owned by the host and fixed for the lifetime of an engine;
changing dimensionality requires building a new engine.

All environment variables use the AUMOS_USAGE_ prefix.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the AumOS Usage Engine."""

    service_name: str = "aumos-usage-engine"

    log_level: str = "INFO"
    log_json: bool = False

    # -------------------------------------------------------------------------
    # Dimensionality
    # -------------------------------------------------------------------------

    # Feature vector length fed to the streaming tree
    n_features: int = Field(default=16, ge=1)

    # Number of usage classes (0=productive, 1=neutral, 2=overuse)
    n_classes: int = Field(default=3, ge=2)

    # SPC observation length (P)
    n_observations: int = Field(default=6, ge=1)

    # -------------------------------------------------------------------------
    # Streaming tree
    # -------------------------------------------------------------------------

    # Instances a leaf must exceed before a split is evaluated
    grace_period: int = Field(default=200, ge=1)

    # Hoeffding bound confidence parameter
    hoeffding_delta: float = Field(default=0.05, gt=0.0, lt=1.0)

    # Extra updates applied per feedback record: ceil(weight * confidence)
    feedback_weight: float = Field(default=2.0, gt=0.0)

    # Feedback records retained for replay after drift
    feedback_buffer_size: int = Field(default=200, ge=1)
    feedback_replay_size: int = Field(default=100, ge=0)

    # -------------------------------------------------------------------------
    # Concept drift detector
    # -------------------------------------------------------------------------

    drift_detector: Literal["adwin", "ddm"] = "adwin"

    # Confidence parameter: smaller delta = less sensitive to change
    adwin_delta: float = Field(default=0.002, gt=0.0, lt=1.0)

    # Maximum outcomes retained in the adaptive window
    adwin_max_width: int = Field(default=1000, ge=10)

    ddm_warning_level: float = 2.0
    ddm_drift_level: float = 3.0
    ddm_min_num_instances: int = 30

    # -------------------------------------------------------------------------
    # Multivariate SPC
    # -------------------------------------------------------------------------

    # Observations before the control limit is fixed
    spc_burn_in: int = Field(default=1000, ge=2)

    # False alarm rate
    spc_alpha: float = Field(default=0.001, gt=0.0, lt=1.0)

    # Observations between Cholesky factor refreshes
    spc_factor_refresh_interval: int = Field(default=50, ge=1)

    spc_quantile_method: Literal["approximate", "exact"] = "approximate"

    # -------------------------------------------------------------------------
    # Ensemble voter
    # -------------------------------------------------------------------------

    initial_spc_weight: float = Field(default=2.0, ge=0.0)
    initial_tree_weight: float = Field(default=1.0, ge=0.0)

    # Rolling correctness history per model
    accuracy_history_length: int = Field(default=200, ge=1)

    # Feedback events between weight recomputations
    feedback_batch_size: int = Field(default=50, ge=1)

    # Pending notification requests kept per subject
    notification_outbox_size: int = Field(default=100, ge=1)

    model_config = SettingsConfigDict(env_prefix="AUMOS_USAGE_")

    @model_validator(mode="after")
    def _check_consistency(self) -> "Settings":
        """Reject combinations no engine could be built from."""
        if self.spc_burn_in <= self.n_observations:
            raise ValueError(
                f"spc_burn_in ({self.spc_burn_in}) must exceed "
                f"n_observations ({self.n_observations})"
            )
        if self.ddm_warning_level >= self.ddm_drift_level:
            raise ValueError("ddm_warning_level must be less than ddm_drift_level")
        return self
