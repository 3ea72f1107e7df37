"""Runtime configuration for the RFPRAG services."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "and", "for", "that", "this", "with", "have", "your", "from",
        "what", "how", "does", "can", "will", "please", "describe", "provide",
        "explain", "about", "which", "their", "been", "being", "would", "could",
        "should", "into", "more", "other", "some", "such", "than", "them", "then",
        "these", "they", "were", "when", "where", "who", "also", "each", "only",
    }
)


@dataclass(frozen=True)
class PipelineConfig:
    """Thresholds and weights driving retrieval, the answer cascade and batching.

    Similarities are on a 0-100 scale. Delays are in milliseconds.
    """

    # Answer library
    answer_search_limit: int = 5
    answer_min_similarity: float = 20.0
    direct_reuse_similarity: float = 70.0
    context_reuse_similarity: float = 60.0
    context_min_similarity: float = 30.0
    duplicate_threshold: float = 80.0
    outdated_months: int = 6

    # Knowledge chunks
    knowledge_search_limit: int = 5
    knowledge_min_similarity: float = 0.0

    # Training examples
    training_max_examples: int = 3
    training_min_similarity: float = 10.0
    training_min_response_length: int = 50

    # Trust scoring
    trust_base: float = 55.0
    trust_answer_divisor: float = 3.0
    trust_answer_cap: float = 25.0
    trust_chunk_weight: float = 5.0
    trust_chunk_cap: float = 25.0
    trust_corroboration_bonus: float = 10.0
    trust_max: int = 95
    trust_direct_base: int = 70
    trust_direct_divisor: float = 4.0
    trust_template: int = 50
    trust_high_badge: int = 70
    trust_review_badge: int = 50

    # Extractive synthesis
    sentence_min_length: int = 20
    keyword_min_length: int = 5
    extractive_max_sentences: int = 3

    # Batch coordination
    batch_group_size: int = 5
    batch_group_delay_ms: int = 2000
    batch_retry_cooldown_ms: int = 5000

    # Prompt hygiene
    max_prompt_input_chars: int = 10000


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="rfprag_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"

    default_tenant: str = "default"

    # Knowledge chunk persistence
    chunk_backend: Literal["memory", "chroma"] = "memory"
    chroma_persist_dir: Path = Path("./.chroma")
    chroma_collection: str = "rfprag-knowledge"
    chroma_host: str | None = None
    chroma_port: int | None = None
    chroma_ssl: bool = False

    # External generator
    generator_backend: Literal["offline", "openai", "transformers"] = "offline"
    generator_model: str = "gpt-4o-mini"
    generator_api_key: str | None = None
    generator_base_url: str | None = None
    generator_max_new_tokens: int = 512
    generator_temperature: float = 0.3
    generator_timeout_seconds: float = 60.0
    local_generator_model: str = "Qwen/Qwen2.5-1.8B-Instruct"
    local_generator_device: str | None = None

    # Cascade thresholds (see PipelineConfig)
    direct_reuse_similarity: float = 70.0
    context_reuse_similarity: float = 60.0
    context_min_similarity: float = 30.0
    answer_min_similarity: float = 20.0
    training_min_similarity: float = 10.0
    duplicate_threshold: float = 80.0
    outdated_months: int = 6

    # Batch coordination
    batch_group_size: int = 5
    batch_group_delay_ms: int = 2000
    batch_retry_cooldown_ms: int = 5000
    max_batch_questions: int = 200

    # Stop words (comma separated override)
    stop_words: tuple[str, ...] | str = ()

    evaluation_min_accuracy: float = 0.5

    # Security
    api_key: str | None = None  # if set, required in X-API-Key header
    rate_limit_requests: int = 20  # per window per tenant
    rate_limit_burst: int = 5
    rate_limit_window_seconds: int = 60
    max_question_chars: int = 5000

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def stop_words_set(self) -> frozenset[str]:
        value = self.stop_words
        if isinstance(value, str):
            parts = [p.strip().lower() for p in value.split(",") if p.strip()]
            return frozenset(parts) if parts else DEFAULT_STOP_WORDS
        if value:
            return frozenset(word.lower() for word in value)
        return DEFAULT_STOP_WORDS

    def pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            direct_reuse_similarity=self.direct_reuse_similarity,
            context_reuse_similarity=self.context_reuse_similarity,
            context_min_similarity=self.context_min_similarity,
            answer_min_similarity=self.answer_min_similarity,
            training_min_similarity=self.training_min_similarity,
            duplicate_threshold=self.duplicate_threshold,
            outdated_months=self.outdated_months,
            batch_group_size=self.batch_group_size,
            batch_group_delay_ms=self.batch_group_delay_ms,
            batch_retry_cooldown_ms=self.batch_retry_cooldown_ms,
        )


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
