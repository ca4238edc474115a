"""Schema Intelligence - textual schema descriptions for SQL generation."""

from .schema_provider import DEFAULT_SCHEMA_PATH, SchemaProvider, YamlSchemaProvider

__all__ = ["DEFAULT_SCHEMA_PATH", "SchemaProvider", "YamlSchemaProvider"]
