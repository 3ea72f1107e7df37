from __future__ import annotations

import sys
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from rfprag.config import Settings
from rfprag.errors import GenerationError, RateLimitedError
from rfprag.services.generation import (
    GenerationConfig,
    OfflineGenerator,
    OpenAIGenerator,
    TransformersGenerator,
    build_generator,
    classify_error,
)


class HttpError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def _completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.mark.parametrize(
    "exc",
    [
        Exception("HTTP 429 Too Many Requests"),
        Exception("You exceeded your current quota"),
        Exception("Resource exhausted for model"),
        HttpError("slow down", 429),
        RateLimitedError("already classified"),
    ],
)
def test_rate_limit_shaped_errors_are_classified(exc: Exception):
    assert isinstance(classify_error(exc), RateLimitedError)


def test_other_errors_are_generation_errors():
    error = classify_error(ValueError("connection reset"))
    assert type(error) is GenerationError
    assert str(error) == "connection reset"


def test_openai_generator_returns_stripped_text():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion("  Our SLA is 99.9%.  ")
    generator = OpenAIGenerator(GenerationConfig(model="gpt-test", max_new_tokens=64), client=client)
    assert generator.generate("prompt text") == "Our SLA is 99.9%."
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-test"
    assert kwargs["max_tokens"] == 64
    assert kwargs["messages"][-1] == {"role": "user", "content": "prompt text"}


def test_openai_generator_maps_failures():
    client = MagicMock()
    client.chat.completions.create.side_effect = HttpError("rate limited", 429)
    with pytest.raises(RateLimitedError):
        OpenAIGenerator(client=client).generate("prompt")
    client.chat.completions.create.side_effect = None
    client.chat.completions.create.return_value = _completion("")
    with pytest.raises(GenerationError):
        OpenAIGenerator(client=client).generate("prompt")


def test_offline_generator_always_declines():
    with pytest.raises(GenerationError):
        OfflineGenerator().generate("anything")


def test_build_generator_selects_backend():
    assert isinstance(build_generator(Settings(generator_backend="offline")), OfflineGenerator)
    generator = build_generator(Settings(generator_backend="openai", generator_api_key="sk-test"))
    assert isinstance(generator, OpenAIGenerator)
    assert isinstance(build_generator(Settings(generator_backend="transformers")), TransformersGenerator)


class FakeTokenizer:
    pad_token = None
    eos_token = "<eos>"
    pad_token_id = 7

    def __init__(self) -> None:
        self.rendered: list[list[dict[str, str]]] = []

    def apply_chat_template(self, messages, tokenize, add_generation_prompt):
        self.rendered.append(messages)
        return f"<chat>{messages[-1]['content']}"

    def __call__(self, text, return_tensors, padding):
        return SimpleNamespace(input_ids=SimpleNamespace(shape=(1, 3)), attention_mask="mask")

    def decode(self, tokens, skip_special_tokens):
        return " ".join(tokens)


def _local_model(*outputs: str) -> MagicMock:
    model = MagicMock()
    model.generate.return_value = [["<p1>", "<p2>", "<p3>", *outputs]]
    return model


def test_transformers_generator_decodes_only_new_tokens():
    tokenizer = FakeTokenizer()
    model = _local_model("Backups", "are", "encrypted.")
    generator = TransformersGenerator(GenerationConfig(model="local", max_new_tokens=32), tokenizer=tokenizer, model=model)
    assert generator.generate("How are backups protected?") == "Backups are encrypted."
    assert tokenizer.rendered[0][-1] == {"role": "user", "content": "How are backups protected?"}
    assert model.generate.call_args.kwargs["max_new_tokens"] == 32
    assert model.generate.call_args.kwargs["attention_mask"] == "mask"


def test_transformers_generator_maps_failures():
    blank = TransformersGenerator(tokenizer=FakeTokenizer(), model=_local_model("  "))
    with pytest.raises(GenerationError):
        blank.generate("prompt")
    failing_model = MagicMock()
    failing_model.generate.side_effect = RuntimeError("CUDA out of memory")
    with pytest.raises(GenerationError, match="out of memory"):
        TransformersGenerator(tokenizer=FakeTokenizer(), model=failing_model).generate("prompt")


def test_transformers_generator_loads_model_on_first_use(monkeypatch):
    tokenizer = FakeTokenizer()
    model = _local_model("Yes.")
    model.config = SimpleNamespace(pad_token_id=None)
    fake_transformers = SimpleNamespace(
        AutoTokenizer=SimpleNamespace(from_pretrained=MagicMock(return_value=tokenizer)),
        AutoModelForCausalLM=SimpleNamespace(from_pretrained=MagicMock(return_value=model)),
    )
    monkeypatch.setitem(sys.modules, "transformers", fake_transformers)
    generator = TransformersGenerator(GenerationConfig(model="local/qwen"))
    fake_transformers.AutoTokenizer.from_pretrained.assert_not_called()
    assert generator.generate("Do you offer SSO?") == "Yes."
    fake_transformers.AutoTokenizer.from_pretrained.assert_called_once_with("local/qwen", trust_remote_code=True)
    assert tokenizer.pad_token == "<eos>"
    assert model.config.pad_token_id == 7


def test_transformers_generator_load_failure_declines(monkeypatch):
    fake_transformers = SimpleNamespace(
        AutoTokenizer=SimpleNamespace(from_pretrained=MagicMock(side_effect=OSError("model not found"))),
        AutoModelForCausalLM=SimpleNamespace(from_pretrained=MagicMock()),
    )
    monkeypatch.setitem(sys.modules, "transformers", fake_transformers)
    with pytest.raises(GenerationError, match="could not be loaded"):
        TransformersGenerator(GenerationConfig(model="missing/model")).generate("prompt")
