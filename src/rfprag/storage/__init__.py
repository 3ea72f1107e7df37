"""Record persistence backends."""

from .chroma import ChromaChunkRepository
from .repositories import (
    AnswerRepository,
    ChunkRepository,
    InMemoryAnswerRepository,
    InMemoryChunkRepository,
    InMemoryTrainingRepository,
    TrainingRepository,
)

__all__ = [
    "AnswerRepository",
    "ChromaChunkRepository",
    "ChunkRepository",
    "InMemoryAnswerRepository",
    "InMemoryChunkRepository",
    "InMemoryTrainingRepository",
    "TrainingRepository",
]
