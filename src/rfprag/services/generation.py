"""External generator backends for RFPRAG."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from rfprag.config import Settings
from rfprag.errors import GenerationError, RateLimitedError

if TYPE_CHECKING:
    from openai import OpenAI

LOGGER = logging.getLogger(__name__)

RATE_LIMIT_MARKERS: tuple[str, ...] = ("429", "quota", "rate limit", "rate-limit", "resource exhausted", "too many requests")

SYSTEM_PROMPT = (
    "You are an expert RFP proposal writer. Answer the question using the labelled context. "
    "Prefer facts from the knowledge excerpts and past answers, follow the style of the winning "
    "patterns, and never invent certifications or figures that are not in the context."
)


@dataclass(frozen=True)
class GenerationConfig:
    """Configuration for answer generation."""

    model: str = "gpt-4o-mini"
    max_new_tokens: int = 512
    temperature: float = 0.3
    api_key: str | None = None
    base_url: str | None = None
    timeout_seconds: float = 60.0
    device: str | None = None


class TextGenerator(Protocol):
    """Protocol describing the external generator contract."""

    def generate(self, prompt: str) -> str:
        """Return generated text for ``prompt`` or raise ``GenerationError``."""


def is_rate_limit_message(message: str | None) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def classify_error(exc: BaseException) -> GenerationError:
    """Map any generator failure onto ``RateLimitedError`` or ``GenerationError``."""

    if isinstance(exc, GenerationError):
        return exc
    status = getattr(exc, "status_code", None)
    if status == 429 or type(exc).__name__ == "RateLimitError" or is_rate_limit_message(str(exc)):
        return RateLimitedError(str(exc) or "Rate limit exceeded")
    return GenerationError(str(exc) or type(exc).__name__)


class OfflineGenerator:
    """Generator used when no external service is configured; always declines."""

    def generate(self, prompt: str) -> str:
        raise GenerationError("No external generator configured")


class OpenAIGenerator:
    """Chat-completions generator for OpenAI-compatible endpoints."""

    def __init__(self, config: GenerationConfig | None = None, client: OpenAI | None = None) -> None:
        self._config = config or GenerationConfig()
        if client is None:
            from openai import OpenAI

            client = OpenAI(
                api_key=self._config.api_key,
                base_url=self._config.base_url,
                timeout=self._config.timeout_seconds,
            )
        self._client = client

    def generate(self, prompt: str) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self._config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self._config.temperature,
                max_tokens=self._config.max_new_tokens,
            )
        except Exception as exc:
            raise classify_error(exc) from exc
        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not text:
            raise GenerationError("Generator returned no text")
        return text


class TransformersGenerator:
    """Generator that runs a local causal language model via Transformers.

    The tokenizer and model are loaded on first use unless passed in.
    """

    def __init__(self, config: GenerationConfig | None = None, *, tokenizer: Any = None, model: Any = None) -> None:
        self._config = config or GenerationConfig(model="Qwen/Qwen2.5-1.8B-Instruct")
        self._tokenizer = tokenizer
        self._model = model

    def _load(self) -> None:
        if self._tokenizer is not None and self._model is not None:
            return
        try:
            from transformers import AutoModelForCausalLM, AutoTokenizer

            tokenizer = AutoTokenizer.from_pretrained(self._config.model, trust_remote_code=True)
            model = AutoModelForCausalLM.from_pretrained(self._config.model, trust_remote_code=True)
        except Exception as exc:
            LOGGER.warning("Local generation model unavailable: %s", exc)
            raise GenerationError(f"Local model {self._config.model} could not be loaded: {exc}") from exc
        if tokenizer.pad_token is None and tokenizer.eos_token is not None:
            tokenizer.pad_token = tokenizer.eos_token
        if getattr(model.config, "pad_token_id", None) is None and tokenizer.pad_token_id is not None:
            model.config.pad_token_id = tokenizer.pad_token_id
        if self._config.device:
            model.to(self._config.device)
        self._tokenizer, self._model = tokenizer, model
        LOGGER.info("Loaded generation model %s", self._config.model)

    def _render(self, prompt: str) -> str:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        if hasattr(self._tokenizer, "apply_chat_template"):
            return self._tokenizer.apply_chat_template(messages, tokenize=False, add_generation_prompt=True)
        return f"{SYSTEM_PROMPT}\n\n{prompt}\n\nAnswer:"

    def generate(self, prompt: str) -> str:
        self._load()
        text = self._render(prompt)
        try:
            tokenized = self._tokenizer(text, return_tensors="pt", padding=True)
            input_ids = tokenized.input_ids
            attention_mask = tokenized.attention_mask
            prompt_length = input_ids.shape[1]
            if self._config.device:
                input_ids = input_ids.to(self._config.device)
                attention_mask = attention_mask.to(self._config.device)
            # generate() already runs without gradient tracking.
            output = self._model.generate(
                input_ids,
                attention_mask=attention_mask,
                max_new_tokens=self._config.max_new_tokens,
                temperature=self._config.temperature,
            )
            generated = self._tokenizer.decode(output[0][prompt_length:], skip_special_tokens=True).strip()
        except Exception as exc:
            raise classify_error(exc) from exc
        if not generated:
            raise GenerationError("Generator returned no text")
        return generated


def build_generator(settings: Settings) -> TextGenerator:
    """Instantiate the generator selected by ``settings.generator_backend``."""

    if settings.generator_backend == "openai":
        return OpenAIGenerator(
            GenerationConfig(
                model=settings.generator_model,
                max_new_tokens=settings.generator_max_new_tokens,
                temperature=settings.generator_temperature,
                api_key=settings.generator_api_key,
                base_url=settings.generator_base_url,
                timeout_seconds=settings.generator_timeout_seconds,
            ),
        )
    if settings.generator_backend == "transformers":
        return TransformersGenerator(
            GenerationConfig(
                model=settings.local_generator_model,
                max_new_tokens=settings.generator_max_new_tokens,
                temperature=settings.generator_temperature,
                device=settings.local_generator_device,
            ),
        )
    return OfflineGenerator()
