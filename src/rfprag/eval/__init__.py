"""Evaluation harness for the RFPRAG answer cascade."""

from .cli import EvaluationResult, main

__all__ = ["EvaluationResult", "main"]
