"""
Context augmentation from the page the user is looking at.

Independently of the question, asks the model for the most relevant query
for the current page and runs it. Strictly best-effort: every failure ends
in an empty auxiliary row set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from coachsmith.errors import GenerationError, QueryExecutionError, ScopingError
from coachsmith.llm.gateway import GeminiGateway
from coachsmith.logger import get_logger
from coachsmith.query_execution.sql_executor import QueryExecutor
from coachsmith.query_processing.sql_generator import extract_sql
from coachsmith.query_processing.sql_scoping import contains_mutation, quote_literal, scope_to_user
from coachsmith.utils.llm_tracker import LLMTracker

logger = get_logger(__name__)


@dataclass
class AugmentationResult:
    sql_query: str = ""
    rows: List[Dict[str, Any]] = field(default_factory=list)


CONTEXT_PROMPT_TEMPLATE = """Generate a SQL query to get the most relevant data for a user on the "{page}" page.

Database Schema:
{schema}

User ID: {user_id}

Generate a query that would give useful context about what's on this page. For example:
- If page is "properties": Get all properties with key metrics (address, status, cash flow, ROE)
- If page is "dashboard": Get portfolio summary (total properties, total cash flow, top performers)
- If page is "agency": Get all clients with their metrics
- If page is "business": Get campaigns data

Rules:
- One read-only PostgreSQL SELECT statement
- Always filter by user_id = {user_literal}

Return ONLY the SQL query in JSON format:
{{
  "sql_query": "SELECT ... FROM ... WHERE user_id = {user_literal} ..."
}}"""


class ContextAugmenter:
    STAGE = "context_query"

    def __init__(self, gateway: GeminiGateway, executor: QueryExecutor):
        self.gateway = gateway
        self.executor = executor

    def build_prompt(self, page_context: str, schema_text: str, user_id: str) -> str:
        return CONTEXT_PROMPT_TEMPLATE.format(
            page=page_context,
            schema=schema_text,
            user_id=user_id,
            user_literal=quote_literal(user_id),
        )

    async def augment(
        self,
        page_context: Optional[str],
        schema_text: str,
        user_id: str,
        tracker: Optional[LLMTracker] = None,
    ) -> AugmentationResult:
        if not page_context:
            return AugmentationResult()

        prompt = self.build_prompt(page_context, schema_text, user_id)
        try:
            result = await self.gateway.generate(prompt, stage=self.STAGE, tracker=tracker)
        except GenerationError as e:
            logger.warning(f"[augment] failed to generate context query for '{page_context}': {e}")
            return AugmentationResult()

        sql = extract_sql(result.text)
        if not sql:
            logger.info(f"[augment] no context query for page '{page_context}'")
            return AugmentationResult()

        if contains_mutation(sql):
            logger.warning(f"[augment] rejected context query containing a write keyword: {sql}")
            return AugmentationResult(sql_query=sql)

        try:
            sql = scope_to_user(sql, user_id)
        except ScopingError as e:
            logger.warning(f"[augment] could not scope context query, skipping: {e}")
            return AugmentationResult(sql_query=sql)

        try:
            rows = await self.executor.execute(sql)
        except QueryExecutionError as e:
            logger.warning(f"[augment] context query failed: {e}")
            return AugmentationResult(sql_query=sql)

        logger.info(f"[augment] context query returned {len(rows)} rows for page context: {page_context}")
        return AugmentationResult(sql_query=sql, rows=rows)
