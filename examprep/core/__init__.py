"""
Foundational configuration, contracts and generation plumbing for the exam engine.

Higher-level assessment modules (``apps.assessment``) depend on these without
knowing which generation provider is configured.
"""

from .config import AssessmentConfig, RoleModelConfig, load_assessment_config
from .contracts import GRADE_CONTRACT, QUESTION_SET_CONTRACT, STUDY_PLAN_CONTRACT, SchemaContract
from .errors import FailureKind, GenerationFailure
from .generation import GenerationClient, GenerationRequest, build_generation_client
from .provenance import ProvenanceEvent, ProvenanceLogger

__all__ = [
    "AssessmentConfig",
    "FailureKind",
    "GRADE_CONTRACT",
    "GenerationClient",
    "GenerationFailure",
    "GenerationRequest",
    "ProvenanceEvent",
    "ProvenanceLogger",
    "QUESTION_SET_CONTRACT",
    "RoleModelConfig",
    "STUDY_PLAN_CONTRACT",
    "SchemaContract",
    "build_generation_client",
    "load_assessment_config",
]
