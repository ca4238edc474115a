"""
Answer synthesis.

Builds the coaching prompt from the question, the page the user is on and
whatever data the pipeline retrieved, then asks the model for the answer
either in one piece or as a stream.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from coachsmith.llm.gateway import GeminiGateway, GenerationResult, ModelStream
from coachsmith.logger import get_logger
from coachsmith.query_processing.context_augmenter import AugmentationResult
from coachsmith.utils.llm_tracker import LLMTracker

from .prompts import (
    AUXILIARY_SECTION,
    COACH_SYSTEM_PROMPT,
    DATA_FOUND_SECTION,
    NO_DATA_SECTION,
    PAGE_DATA_SECTION,
    PAGE_GUIDANCE,
    RESPONSE_GUIDELINES,
)

logger = get_logger(__name__)


class AnswerSynthesizer:
    """Turns retrieved rows into a short coaching answer."""

    STAGE = "synthesis"

    def __init__(
        self,
        gateway: GeminiGateway,
        max_prompt_rows: int = 50,
        max_prompt_chars: int = 12000,
    ):
        self.gateway = gateway
        self.max_prompt_rows = max_prompt_rows
        self.max_prompt_chars = max_prompt_chars

    def render_json(self, data: Any) -> str:
        """Pretty JSON for the prompt, capped in rows and characters."""
        note = ""
        if isinstance(data, list) and len(data) > self.max_prompt_rows:
            note = f"\n(showing first {self.max_prompt_rows} of {len(data)} rows)"
            data = data[: self.max_prompt_rows]

        text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        if len(text) > self.max_prompt_chars:
            dropped = len(text) - self.max_prompt_chars
            text = text[: self.max_prompt_chars] + f"\n... [truncated {dropped} chars]"
        return text + note

    @staticmethod
    def page_guidance(page_context: str) -> Optional[str]:
        return PAGE_GUIDANCE.get(page_context.strip().lower())

    def build_prompt(
        self,
        question_text: str,
        primary_rows: List[Dict[str, Any]],
        auxiliary: AugmentationResult,
        schema_text: str,
        *,
        primary_sql: str = "",
        page_context: Optional[str] = None,
        page_data: Any = None,
    ) -> str:
        context_parts = []
        if page_context:
            line = f'**Current Page Context:** The user is on the "{page_context}" page.'
            guidance = self.page_guidance(page_context)
            if guidance:
                line += f" {guidance}"
            context_parts.append(line)

        if isinstance(page_data, (dict, list)):
            context_parts.append(PAGE_DATA_SECTION.format(page_data=self.render_json(page_data)))

        if auxiliary.rows:
            context_parts.append(AUXILIARY_SECTION.format(rows=self.render_json(auxiliary.rows)))

        # primary rows win over auxiliary ones
        rows = primary_rows if primary_rows else auxiliary.rows
        all_sql = "; ".join(s for s in (primary_sql, auxiliary.sql_query) if s)

        if rows:
            data_summary = DATA_FOUND_SECTION.format(
                rows=self.render_json(rows),
                sql=all_sql or "Auto-query based on page context",
                schema=schema_text,
            )
        else:
            data_summary = NO_DATA_SECTION.format(sql=all_sql or "No SQL query was generated")

        sections = [
            COACH_SYSTEM_PROMPT,
            f'**User\'s Question:** "{question_text}"',
        ]
        if context_parts:
            sections.append("\n\n".join(context_parts))
        sections.extend([data_summary, RESPONSE_GUIDELINES])

        prompt = "\n\n".join(sections)
        logger.debug(
            f"[synth] prompt built: chars={len(prompt)} primary_rows={len(primary_rows)} "
            f"aux_rows={len(auxiliary.rows)} has_data={bool(rows)}"
        )
        return prompt

    async def synthesize(self, prompt: str, tracker: Optional[LLMTracker] = None) -> GenerationResult:
        result = await self.gateway.generate(prompt, stage=self.STAGE, tracker=tracker)
        logger.info(f"[synth] answer generated by {result.model} ({len(result.text)} chars)")
        return result

    async def open_stream(self, prompt: str, tracker: Optional[LLMTracker] = None) -> ModelStream:
        return await self.gateway.open_stream(prompt, stage=self.STAGE, tracker=tracker)
