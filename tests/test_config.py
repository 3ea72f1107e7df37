from __future__ import annotations

from rfprag.config import DEFAULT_STOP_WORDS, PipelineConfig, Settings, get_settings


def test_pipeline_defaults_match_cascade_thresholds():
    config = PipelineConfig()
    assert (config.direct_reuse_similarity, config.context_reuse_similarity, config.context_min_similarity) == (70, 60, 30)
    assert (config.answer_min_similarity, config.training_min_similarity) == (20, 10)
    assert (config.batch_group_size, config.batch_group_delay_ms, config.batch_retry_cooldown_ms) == (5, 2000, 5000)
    assert config.trust_max == 95


def test_settings_defaults():
    settings = get_settings({"environment": "test"})
    assert settings.is_test
    assert settings.generator_backend == "offline"
    assert settings.chunk_backend == "memory"
    assert settings.rate_limit_requests == 20
    assert settings.stop_words_set == DEFAULT_STOP_WORDS


def test_stop_words_accept_comma_separated_override():
    settings = Settings(stop_words="Alpha, beta ,")
    assert settings.stop_words_set == frozenset({"alpha", "beta"})


def test_pipeline_config_carries_overrides():
    settings = Settings(direct_reuse_similarity=80, batch_group_size=3)
    config = settings.pipeline_config()
    assert config.direct_reuse_similarity == 80
    assert config.batch_group_size == 3
    assert config.context_min_similarity == 30
