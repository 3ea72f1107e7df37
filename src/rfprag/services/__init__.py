"""Service layer orchestrations for RFPRAG."""

from .batch import BatchCoordinator
from .generation import (
    GenerationConfig,
    OfflineGenerator,
    OpenAIGenerator,
    TextGenerator,
    TransformersGenerator,
    build_generator,
    classify_error,
)
from .orchestrator import CascadeStep, ResponseOrchestrator, select_template
from .prompts import PromptBuilder, PromptBuilderConfig
from .trust import TrustScorer

__all__ = [
    "BatchCoordinator",
    "CascadeStep",
    "GenerationConfig",
    "OfflineGenerator",
    "OpenAIGenerator",
    "PromptBuilder",
    "PromptBuilderConfig",
    "ResponseOrchestrator",
    "TextGenerator",
    "TransformersGenerator",
    "TrustScorer",
    "build_generator",
    "classify_error",
    "select_template",
]
