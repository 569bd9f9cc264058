"""Observability: logging and metrics for the pub-sub engine."""

from mongo_pubsub.observability.logger import get_logger
from mongo_pubsub.observability.metrics import Metrics

__all__ = ["get_logger", "Metrics"]
