"""
Gemini model gateway.

One capability shared by every pipeline stage that needs model output:
pick a model variant (best-effort capability discovery), call it either
buffered or streamed, and walk a priority-ordered fallback chain when the
variant turns out to be unavailable.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Iterable, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from coachsmith.errors import GenerationError, GenerationUnavailable, Misconfigured
from coachsmith.logger import get_logger
from coachsmith.utils.llm_tracker import LLMTracker, usage_tokens

logger = get_logger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    text: str
    model: str


def is_model_unavailable(error: BaseException) -> bool:
    """True when the failure means "this variant does not exist / is not served"."""
    if isinstance(error, google_exceptions.NotFound):
        return True
    message = str(error).lower()
    return "404" in message or "not found" in message


class ModelStream:
    """Async iterator over the text fragments of one streamed generation.

    Fragments are yielded in arrival order. Chunks whose text cannot be read
    (blocked or empty candidates) are skipped. ``completed`` flips to True
    only once the model signals the end of the stream.

    Whitespace-only fragments are forwarded as they are. Unlike a buffered
    generation, a blank streamed answer cannot fall back to another variant
    once the channel is open; the caller delivers it but does not cache it.
    """

    def __init__(
        self,
        response: Any,
        model: str,
        *,
        stage: str,
        tracker: Optional[LLMTracker] = None,
        prompt_chars: int = 0,
    ):
        self.model = model
        self.stage = stage
        self.completed = False
        self._response = response
        self._tracker = tracker
        self._prompt_chars = prompt_chars
        self._fragments = self._iterate()

    def __aiter__(self) -> "ModelStream":
        return self

    async def __anext__(self) -> str:
        return await self._fragments.__anext__()

    async def aclose(self) -> None:
        """Release the underlying generation channel."""
        await self._fragments.aclose()

    async def _iterate(self) -> AsyncIterator[str]:
        t0 = time.perf_counter()
        chunk_count = 0
        response_chars = 0
        async for chunk in self._response:
            try:
                text = chunk.text
            except ValueError as e:
                logger.warning(f"[llm] skipping unreadable stream chunk from {self.model}: {e}")
                continue
            if not text:
                continue
            chunk_count += 1
            response_chars += len(text)
            yield text

        self.completed = True
        dt_ms = (time.perf_counter() - t0) * 1000.0
        logger.info(
            f"[llm] stream complete: stage={self.stage} model={self.model} "
            f"chunks={chunk_count} chars={response_chars} in {dt_ms:.1f}ms"
        )
        if self._tracker is not None:
            prompt_tokens, completion_tokens = usage_tokens(getattr(self._response, "usage_metadata", None))
            self._tracker.track_call(
                stage=self.stage,
                model=self.model,
                latency_ms=dt_ms,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                prompt_chars=self._prompt_chars,
                response_chars=response_chars,
                streamed=True,
            )


class GeminiGateway:
    """Generate with fallback, optionally streamed."""

    def __init__(
        self,
        api_key: Optional[str],
        default_model: str = "gemini-pro",
        fallback_models: Optional[Iterable[str]] = None,
        discover: bool = True,
        model_factory: Optional[Callable[[str], Any]] = None,
        model_lister: Optional[Callable[[], Iterable[Any]]] = None,
        debug_prompts: bool = False,
        max_log_chars: int = 500,
    ):
        """
        Args:
            api_key: Gemini API key; required
            default_model: Variant used when discovery is off or finds nothing
            fallback_models: Ordered variants tried after an "unavailable" failure
            discover: Enumerate available variants before the first call
            model_factory: Builds a model handle from a variant name
                (defaults to ``genai.GenerativeModel``)
            model_lister: Lists available models (defaults to ``genai.list_models``)
            debug_prompts: Log truncated prompts at DEBUG level
            max_log_chars: Truncation length for debug prompt logging
        """
        if not api_key:
            raise Misconfigured(
                "Gemini API key not configured. Please set GEMINI_API_KEY in the service environment."
            )
        if model_factory is None:
            genai.configure(api_key=api_key)
            model_factory = genai.GenerativeModel
        self.default_model = default_model
        self.fallback_models: List[str] = list(fallback_models or [])
        self.discover = discover
        self.debug_prompts = debug_prompts
        self.max_log_chars = max_log_chars
        self._model_factory = model_factory
        self._model_lister = model_lister or genai.list_models
        self._discovered: Optional[str] = None
        logger.info(
            f"Initialized Gemini gateway: default={default_model}, "
            f"fallbacks={len(self.fallback_models)}, discovery={'on' if discover else 'off'}"
        )

    async def discover_model(self) -> str:
        """Return the first listed variant that supports generateContent.

        Best-effort: any listing failure falls back to the default variant and
        is retried on the next call. A successful discovery is kept.
        """
        if not self.discover:
            return self.default_model
        if self._discovered:
            return self._discovered

        try:
            models = await asyncio.to_thread(lambda: list(self._model_lister()))
        except Exception as e:
            logger.warning(f"[llm] could not list models, using default {self.default_model}: {e}")
            return self.default_model

        for m in models:
            methods = getattr(m, "supported_generation_methods", None) or []
            if "generateContent" in methods or "GENERATE_CONTENT" in methods:
                name = str(getattr(m, "name", "")).replace("models/", "", 1)
                if name:
                    self._discovered = name
                    logger.info(f"[llm] found available model: {name}")
                    return name

        logger.info(f"[llm] no listed model supports generateContent; using {self.default_model}")
        return self.default_model

    def candidate_models(self, primary: str) -> List[str]:
        """Primary variant first, then the fallback chain without repeats."""
        chain = [primary]
        for name in self.fallback_models:
            if name not in chain:
                chain.append(name)
        return chain

    def _trunc(self, s: str) -> str:
        if len(s) <= self.max_log_chars:
            return s
        return s[: self.max_log_chars] + f"... [truncated {len(s) - self.max_log_chars} chars]"

    async def generate(
        self,
        prompt: str,
        *,
        stage: str,
        tracker: Optional[LLMTracker] = None,
    ) -> GenerationResult:
        """Buffered generation with variant fallback."""
        return await self._invoke(prompt, stage=stage, stream=False, tracker=tracker)

    async def open_stream(
        self,
        prompt: str,
        *,
        stage: str,
        tracker: Optional[LLMTracker] = None,
    ) -> ModelStream:
        """Open a streamed generation with variant fallback.

        Raises GenerationError / GenerationUnavailable if no channel could be
        opened; failures after opening surface while iterating the stream.
        A blank answer only counts as a failed variant for buffered calls.
        """
        return await self._invoke(prompt, stage=stage, stream=True, tracker=tracker)

    async def _invoke(self, prompt: str, *, stage: str, stream: bool, tracker: Optional[LLMTracker]):
        primary = await self.discover_model()
        if self.debug_prompts:
            logger.debug(f"[llm] {stage} prompt (trunc): {self._trunc(prompt)}")

        attempted: List[str] = []
        last_error: Optional[BaseException] = None

        for model_name in self.candidate_models(primary):
            attempted.append(model_name)
            model = self._model_factory(model_name)
            t0 = time.perf_counter()
            try:
                response = await model.generate_content_async(prompt, stream=stream)
                if stream:
                    logger.info(f"[llm] {stage}: stream opened on {model_name}")
                    return ModelStream(
                        response, model_name, stage=stage, tracker=tracker, prompt_chars=len(prompt)
                    )
                text = response.text
            except Exception as e:
                if not is_model_unavailable(e):
                    logger.error(f"[llm] {stage}: {model_name} failed: {e}")
                    raise GenerationError(f"Failed to generate {stage}: {e}", model=model_name) from e
                last_error = e
                logger.warning(f"[llm] {stage}: model {model_name} unavailable, trying next variant")
                continue

            if not text or not text.strip():
                last_error = GenerationError(f"{model_name} returned an empty response", model=model_name)
                logger.warning(f"[llm] {stage}: {model_name} returned empty text, trying next variant")
                continue

            dt_ms = (time.perf_counter() - t0) * 1000.0
            if len(attempted) > 1:
                logger.info(f"[llm] {stage}: succeeded with alternative model {model_name}")
            logger.info(
                f"LLM summary: stage={stage} model={model_name} prompt_chars={len(prompt)} latency_ms={dt_ms:.1f}"
            )
            if tracker is not None:
                prompt_tokens, completion_tokens = usage_tokens(getattr(response, "usage_metadata", None))
                tracker.track_call(
                    stage=stage,
                    model=model_name,
                    latency_ms=dt_ms,
                    prompt_tokens=prompt_tokens,
                    completion_tokens=completion_tokens,
                    prompt_chars=len(prompt),
                    response_chars=len(text),
                )
            return GenerationResult(text=text, model=model_name)

        raise GenerationUnavailable(
            f"All Gemini models failed for {stage}. Check the API key and available models. "
            f"Last error: {last_error}",
            attempted=attempted,
            last_error=last_error,
        )
