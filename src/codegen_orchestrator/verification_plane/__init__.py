"""Quality gates applied to generation results before commit."""

from codegen_orchestrator.verification_plane.quality_gate import (
    BUILTIN_EVALUATORS,
    AlwaysPassGate,
    QualityGate,
    ThresholdQualityGate,
    build_quality_gate,
    resolve_evaluator,
)

__all__ = [
    "BUILTIN_EVALUATORS",
    "AlwaysPassGate",
    "QualityGate",
    "ThresholdQualityGate",
    "build_quality_gate",
    "resolve_evaluator",
]
