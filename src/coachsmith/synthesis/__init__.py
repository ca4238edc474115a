"""Answer synthesis from retrieved data."""

from .answer_synthesizer import AnswerSynthesizer

__all__ = ["AnswerSynthesizer"]
