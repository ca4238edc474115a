"""Query Processing Module for CoachSmith."""

from .sql_scoping import (
    contains_mutation,
    first_table,
    quote_literal,
    scope_to_user,
)
from .sql_generator import GeneratedQuery, SQLGenerator, extract_sql
from .context_augmenter import AugmentationResult, ContextAugmenter

__all__ = [
    # Scoping
    'contains_mutation',
    'first_table',
    'quote_literal',
    'scope_to_user',

    # SQL generation
    'GeneratedQuery',
    'SQLGenerator',
    'extract_sql',

    # Page context
    'AugmentationResult',
    'ContextAugmenter',
]
