"""Gemini access with variant discovery and fallback."""

from .gateway import GeminiGateway, GenerationResult, ModelStream, is_model_unavailable

__all__ = ["GeminiGateway", "GenerationResult", "ModelStream", "is_model_unavailable"]
