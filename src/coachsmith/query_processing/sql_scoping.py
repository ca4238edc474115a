"""
User scoping for generated SQL.

Every statement that reaches the database must carry an equality predicate
pinning ``user_id`` to the requesting user. Model output is not trusted to do
this, so the statement is parsed with sqlparse into its top-level
SELECT / FROM / WHERE structure and the predicate is injected where missing.

This is structural rewriting of a single SELECT, not a query compiler.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

import sqlparse
from sqlparse import tokens as T
from sqlparse.sql import Comparison, Identifier, IdentifierList, Statement, Token, Where

from coachsmith.errors import ScopingError
from coachsmith.logger import get_logger

logger = get_logger(__name__)

# Top-level clauses that may follow FROM/WHERE; a new WHERE goes before the first of them.
CLAUSES_AFTER_WHERE = {
    "GROUP BY",
    "HAVING",
    "WINDOW",
    "ORDER BY",
    "LIMIT",
    "OFFSET",
    "FETCH",
    "FOR",
}

SET_OPERATORS = {"UNION", "UNION ALL", "INTERSECT", "EXCEPT"}

_MUTATION_RE = re.compile(r"insert|update|delete", re.IGNORECASE)


def quote_literal(value: str) -> str:
    """Render a string as a SQL literal, doubling embedded single quotes."""
    return "'" + value.replace("'", "''") + "'"


def user_predicate(user_id: str, qualifier: Optional[str] = None) -> str:
    column = f"{qualifier}.user_id" if qualifier else "user_id"
    return f"{column} = {quote_literal(user_id)}"


def contains_mutation(sql_text: str) -> bool:
    """True if the text mentions insert, update or delete anywhere (case-insensitive)."""
    return bool(_MUTATION_RE.search(sql_text or ""))


def _keyword(tok: Token) -> Optional[str]:
    if tok.ttype is not None and tok.ttype in T.Keyword:
        return " ".join(tok.normalized.upper().split())
    return None


def _strip_comments(sql_text: str) -> str:
    return sqlparse.format(sql_text or "", strip_comments=True)


def parse_single_select(sql_text: str) -> Statement:
    """Parse text that must hold exactly one SELECT (or WITH ... SELECT).

    Comments are removed first, so neither a predicate inside a comment nor a
    trailing ``--`` comment can change what gets scoped.
    """
    statements = [s for s in sqlparse.split(_strip_comments(sql_text)) if s.strip()]
    if len(statements) != 1:
        raise ScopingError(f"Expected a single statement, got {len(statements)}")

    text = statements[0].strip().rstrip(";").rstrip()
    stmt = sqlparse.parse(text)[0]
    if stmt.get_type() != "SELECT":
        raise ScopingError(f"Only SELECT statements can be scoped (got {stmt.get_type()})")
    if any(tok.ttype in T.Comment for tok in stmt.flatten()):
        raise ScopingError("Statement still contains comments after stripping")

    for tok in stmt.tokens:
        if _keyword(tok) in SET_OPERATORS:
            raise ScopingError("Set operations (UNION/INTERSECT/EXCEPT) are not supported")
    return stmt


def _find_from(stmt: Statement) -> int:
    for idx, tok in enumerate(stmt.tokens):
        if _keyword(tok) == "FROM":
            return idx
    raise ScopingError("Statement has no top-level FROM clause")


def _first_table(stmt: Statement, from_idx: int) -> Tuple[Optional[str], Optional[str]]:
    """(table name, qualifier) of the first table reference after FROM."""
    for tok in stmt.tokens[from_idx + 1:]:
        if tok.is_whitespace or tok.ttype in T.Comment:
            continue
        if isinstance(tok, IdentifierList):
            tok = next((t for t in tok.get_identifiers() if isinstance(t, Identifier)), tok)
        if isinstance(tok, Identifier):
            real = tok.get_real_name()
            alias = tok.get_alias()
            return real, alias or real
        if tok.ttype in T.Name:
            return tok.value, tok.value
        return None, None
    return None, None


def first_table(sql_text: str) -> Optional[str]:
    """Name of the first top-level FROM table, or None when it cannot be determined."""
    try:
        stmt = parse_single_select(sql_text)
        table, _ = _first_table(stmt, _find_from(stmt))
    except ScopingError:
        return None
    return table


def _top_level_conjuncts(where: Where) -> Optional[List[List[Token]]]:
    """Split the WHERE condition on top-level AND.

    None when the condition is anything but a plain conjunction (OR, NOT or
    BETWEEN at the top level).
    """
    conjuncts: List[List[Token]] = [[]]
    for tok in where.tokens[1:]:
        if tok.is_whitespace:
            continue
        kw = _keyword(tok)
        if kw in CLAUSES_AFTER_WHERE:
            break
        if kw == "AND":
            conjuncts.append([])
            continue
        if kw in ("OR", "NOT", "BETWEEN"):
            return None
        conjuncts[-1].append(tok)
    return conjuncts


def _is_user_predicate(tok: Token, user_id: str, qualifier: Optional[str]) -> bool:
    """``[<qualifier>.]user_id = '<user_id>'`` and nothing else."""
    if not isinstance(tok, Comparison):
        return False
    parts = [t for t in tok.tokens if not t.is_whitespace]
    if len(parts) != 3:
        return False
    left, op, right = parts
    if not (op.ttype in T.Operator.Comparison and op.value == "="):
        return False
    if not isinstance(left, Identifier) or (left.get_real_name() or "").lower() != "user_id":
        return False
    parent = left.get_parent_name()
    if parent is not None and (qualifier is None or parent.lower() != qualifier.lower()):
        return False
    return right.ttype in T.String.Single and right.value == quote_literal(user_id)


def _where_is_scoped(where: Where, user_id: str, qualifier: Optional[str]) -> bool:
    """The condition is a conjunction with the user predicate as one of its own terms."""
    conjuncts = _top_level_conjuncts(where)
    if conjuncts is None:
        return False
    return any(len(c) == 1 and _is_user_predicate(c[0], user_id, qualifier) for c in conjuncts)


def _rewrite_where(where: Where, predicate: str) -> str:
    body = where.tokens[1:]
    split_at = len(body)
    for idx, tok in enumerate(body):
        if _keyword(tok) in CLAUSES_AFTER_WHERE:
            split_at = idx
            break
    condition = "".join(str(t) for t in body[:split_at])
    rest = "".join(str(t) for t in body[split_at:])
    trailing = condition[len(condition.rstrip()):] or (" " if rest else "")
    return f"WHERE {predicate} AND ({condition.strip()}){trailing}{rest}"


def scope_to_user(sql_text: str, user_id: str) -> str:
    """
    Return the statement restricted to rows owned by ``user_id``.

    Existing top-level WHERE: ``WHERE <pred> AND (<existing>)``.
    No WHERE: a new one right after the FROM clause, before GROUP BY,
    ORDER BY, LIMIT and the like. The predicate is qualified with the alias
    (or name) of the first FROM table.

    Raises:
        ScopingError: not a single SELECT, set operation, or no top-level FROM.
    """
    if not user_id:
        raise ScopingError("A user id is required for scoping")

    stmt = parse_single_select(sql_text)
    from_idx = _find_from(stmt)
    table, qualifier = _first_table(stmt, from_idx)
    predicate = user_predicate(user_id, qualifier)

    where = next((t for t in stmt.tokens if isinstance(t, Where)), None)
    if where is not None and _where_is_scoped(where, user_id, qualifier):
        logger.debug("[sql-scope] statement already scoped to user")
        return str(stmt)

    parts = [str(t) for t in stmt.tokens]
    if where is not None:
        idx = stmt.tokens.index(where)
        parts[idx] = _rewrite_where(where, predicate)
        scoped = "".join(parts)
    else:
        insert_at = len(stmt.tokens)
        for idx in range(from_idx + 1, len(stmt.tokens)):
            if _keyword(stmt.tokens[idx]) in CLAUSES_AFTER_WHERE:
                insert_at = idx
                break
        head = "".join(parts[:insert_at]).rstrip()
        tail = "".join(parts[insert_at:])
        scoped = f"{head} WHERE {predicate}" + (f" {tail}" if tail else "")

    logger.info(f"[sql-scope] injected user predicate on {table or 'first FROM table'}")
    return scoped
