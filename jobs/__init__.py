"""
Burn Bridge - Jobs Module

This module contains the batch jobs of the bridge:
- settlement_run: Migrate -> Mint -> Report pipeline and CLI

Reliability Level: Batch Job
"""

from jobs.settlement_run import (
    SettlementPipeline,
    PipelineResult,
    PipelineStep,
    main,
)

__all__ = [
    "SettlementPipeline",
    "PipelineResult",
    "PipelineStep",
    "main",
]
