"""
SQL Generator - Converts natural-language questions into user-scoped SQL.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Optional

import sqlparse

from coachsmith.errors import GenerationError, ScopingError
from coachsmith.llm.gateway import GeminiGateway
from coachsmith.logger import get_logger
from coachsmith.query_processing.sql_scoping import first_table, quote_literal, scope_to_user
from coachsmith.utils.llm_tracker import LLMTracker

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:sql|json)?[ \t]*\n?", re.IGNORECASE)
_SQL_QUERY_FIELD_RE = re.compile(r'"sql_query"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)


@dataclass(frozen=True)
class GeneratedQuery:
    sql_text: str = ""
    origin_model: Optional[str] = None
    target_table: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.sql_text.strip()


SQL_PROMPT_TEMPLATE = """You are a PostgreSQL/Supabase SQL expert. Generate a SQL query to answer the user's question.

Database Schema:
{schema}

User Question: {question}

Important Rules:
1. Generate ONLY one valid PostgreSQL SELECT statement that is compatible with Supabase
2. Use ONLY tables and columns that exist in the schema above
3. Always filter by user_id = {user_literal} to ensure users only see their own data
4. Return ONLY the SQL query, no explanations or markdown formatting
5. For list queries add a reasonable LIMIT (e.g., LIMIT 50); do not limit counts or sums
6. Use proper PostgreSQL syntax (e.g., use TEXT instead of VARCHAR, use DECIMAL for money)
7. Focus on the MOST RELEVANT data for the question - don't query everything
8. If the question is about properties, prioritize the properties table and related tables (rent_roll_units, work_requests)
9. If the question is about subscriptions, focus on the subscriptions table
10. If the question is about clients, focus on ghl_clients and ghl_weekly_metrics tables

Return the SQL query in this JSON format:
{{
  "sql_query": "SELECT ... FROM ... WHERE user_id = {user_literal} ..."
}}"""


def _first_json_sql(text: str) -> Optional[str]:
    """Value of ``sql_query`` (or ``sql``) in the first JSON object that has one."""
    decoder = json.JSONDecoder()
    idx = text.find("{")
    while idx != -1:
        try:
            obj, _ = decoder.raw_decode(text, idx)
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, dict):
            for key in ("sql_query", "sql"):
                value = obj.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        idx = text.find("{", idx + 1)
    return None


def _is_single_select(text: str) -> bool:
    statements = [s for s in sqlparse.split(text) if s.strip()]
    if len(statements) != 1:
        return False
    return sqlparse.parse(statements[0])[0].get_type() == "SELECT"


def extract_sql(response_text: str) -> str:
    """
    Pull a SQL statement out of a model response.

    Tries, in order: a JSON object carrying ``sql_query``/``sql``; a
    ``"sql_query": "..."`` field inside fenced or malformed JSON; the bare
    text if it is a single SELECT/WITH statement. Returns "" otherwise.
    """
    if not response_text or not response_text.strip():
        return ""

    sql = _first_json_sql(response_text)
    if sql:
        return sql

    stripped = _FENCE_RE.sub("", response_text).strip()
    m = _SQL_QUERY_FIELD_RE.search(stripped)
    if m:
        return m.group(1).replace("\\n", "\n").replace('\\"', '"').strip()

    if _is_single_select(stripped):
        return stripped.rstrip(";").strip()

    logger.warning(f"[sql-gen] could not find SQL in model response ({len(response_text)} chars)")
    return ""


class SQLGenerator:
    """Asks the model for one user-scoped SQL statement per question."""

    STAGE = "sql_generation"

    def __init__(self, gateway: GeminiGateway):
        self.gateway = gateway

    def build_prompt(self, question_text: str, schema_text: str, user_id: str) -> str:
        return SQL_PROMPT_TEMPLATE.format(
            schema=schema_text,
            question=question_text,
            user_literal=quote_literal(user_id),
        )

    async def generate(
        self,
        question_text: str,
        schema_text: str,
        user_id: str,
        tracker: Optional[LLMTracker] = None,
    ) -> GeneratedQuery:
        """Generate and scope SQL; any generation failure yields an empty query."""
        prompt = self.build_prompt(question_text, schema_text, user_id)
        try:
            result = await self.gateway.generate(prompt, stage=self.STAGE, tracker=tracker)
        except GenerationError as e:
            logger.error(f"[sql-gen] SQL generation failed, continuing without data: {e}")
            return GeneratedQuery()

        sql = extract_sql(result.text)
        if not sql:
            return GeneratedQuery(origin_model=result.model)

        try:
            sql = scope_to_user(sql, user_id)
        except ScopingError as e:
            # left unscoped; the executor step refuses it
            logger.warning(f"[sql-gen] could not scope generated SQL: {e}")

        logger.info(f"[sql-gen] generated SQL via {result.model}: {sql}")
        return GeneratedQuery(sql_text=sql, origin_model=result.model, target_table=first_table(sql))
