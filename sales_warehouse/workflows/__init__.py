"""
Workflows Module
"""
from .orchestrator import (
    ENTITY_STAGES,
    EntityStage,
    EntityStageResult,
    EtlOrchestrator,
    EtlRunResult,
)

__all__ = [
    "ENTITY_STAGES",
    "EntityStage",
    "EntityStageResult",
    "EtlOrchestrator",
    "EtlRunResult",
]
