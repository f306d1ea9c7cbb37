"""Ingestion pipeline: per-item state machine and the monitoring loop."""

from anitorrent.pipeline.models import (
    BatchSummary,
    ItemOutcome,
    PipelineOptions,
    PipelineState,
)
from anitorrent.pipeline.monitor import FeedMonitor, SessionStats
from anitorrent.pipeline.orchestrator import PipelineOrchestrator

__all__ = [
    "BatchSummary",
    "FeedMonitor",
    "ItemOutcome",
    "PipelineOptions",
    "PipelineOrchestrator",
    "PipelineState",
    "SessionStats",
]
