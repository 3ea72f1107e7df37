"""Prompt injection screening and prompt-safe text handling."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Pattern, Protocol, Sequence

from rfprag.metrics.observability import get_logger

INJECTION_PATTERNS: tuple[Pattern[str], ...] = (
    re.compile(r"ignore\s+(all\s+)?(previous|above|prior)\s+(instructions?|prompts?|rules?)", re.I),
    re.compile(r"disregard\s+(all\s+)?(previous|above|prior)", re.I),
    re.compile(r"forget\s+(everything|all|your)\s+(instructions?|training|prompts?)", re.I),
    re.compile(r"you\s+are\s+now\s+(a|an|the)\s+", re.I),
    re.compile(r"act\s+as\s+(if|though)?\s*(you\s+are|an?)\s+", re.I),
    re.compile(r"pretend\s+(you\s+are|to\s+be)", re.I),
    re.compile(r"system\s*:\s*", re.I),
    re.compile(r"\[\s*SYSTEM\s*\]", re.I),
    re.compile(r"<\s*system\s*>", re.I),
    re.compile(r"<\|?(?:im_start|im_end|endoftext)\|?>", re.I),
    re.compile(r"\[/?INST\]", re.I),
    re.compile(r"reveal\s+(your|the)\s+(system\s+)?prompt", re.I),
    re.compile(r"show\s+(me\s+)?(your|the)\s+(system\s+)?instructions?", re.I),
    re.compile(r"what\s+(are\s+)?(your|the)\s+(original\s+)?instructions?", re.I),
    re.compile(r"output\s+(your|the)\s+(initial\s+)?prompt", re.I),
    re.compile(r"jailbreak", re.I),
    re.compile(r"DAN\s*mode", re.I),
    re.compile(r"developer\s*mode", re.I),
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


@dataclass(frozen=True)
class GuardVerdict:
    safe: bool
    reason: str | None = None


class InjectionGuard(Protocol):
    def check(self, text: str | None) -> GuardVerdict:
        """Return whether ``text`` is safe to place in a prompt."""


class PatternInjectionGuard:
    """Regex screen for instruction-override and role-hijack phrasing."""

    def __init__(self, patterns: Sequence[Pattern[str]] = INJECTION_PATTERNS) -> None:
        self._patterns = tuple(patterns)
        self._logger = get_logger("security")

    def check(self, text: str | None) -> GuardVerdict:
        if not text:
            return GuardVerdict(safe=True)
        for pattern in self._patterns:
            if pattern.search(text):
                self._logger.warning("security.injection_detected", pattern=pattern.pattern, excerpt=text[:100])
                return GuardVerdict(safe=False, reason="Input contains potentially harmful instructions")
        return GuardVerdict(safe=True)


def sanitize_for_prompt(text: str | None, max_length: int = 10000) -> str:
    """Trim, strip control characters and collapse runs of blank lines."""

    if not text:
        return ""
    sanitized = text[:max_length].replace("\0", "")
    sanitized = re.sub(r"[\r\n]+", "\n", sanitized)
    sanitized = _CONTROL_CHARS.sub("", sanitized)
    sanitized = re.sub(r"^#+\s", "# ", sanitized, flags=re.M)
    sanitized = re.sub(r"\n{4,}", "\n\n\n", sanitized)
    return sanitized.strip()


def wrap_user_content(text: str | None, label: str = "User Input", max_length: int = 10000) -> str:
    """Surround caller text with delimiters so the generator can tell it from instructions."""

    tag = label.upper()
    return f"--- BEGIN {tag} ---\n{sanitize_for_prompt(text, max_length)}\n--- END {tag} ---"
