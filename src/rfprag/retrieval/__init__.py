"""Retrieval components."""

from .answers import DEFAULT_CATEGORIES, AnswerLibraryIndex
from .knowledge import KnowledgeChunkStore, KnowledgeStats
from .similarity import LexicalScorer, TokenizerConfig, rank_matches, tokenize
from .training import TrainingExampleStore, TrainingStats

__all__ = [
    "DEFAULT_CATEGORIES",
    "AnswerLibraryIndex",
    "KnowledgeChunkStore",
    "KnowledgeStats",
    "LexicalScorer",
    "TokenizerConfig",
    "TrainingExampleStore",
    "TrainingStats",
    "rank_matches",
    "tokenize",
]
