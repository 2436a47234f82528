"""Ensemble voting over the SPC detector and the streaming tree."""

from aumos_usage_engine.adapters.ensemble.voter import EnsembleVoter, FeedbackOutcome

__all__ = ["EnsembleVoter", "FeedbackOutcome"]
