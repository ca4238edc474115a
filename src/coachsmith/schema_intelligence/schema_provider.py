"""
Schema description for SQL generation.

Loads a YAML table catalogue and renders it into the plain-text description
embedded in generation prompts.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

import yaml

from coachsmith.errors import Misconfigured
from coachsmith.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SCHEMA_PATH = Path(__file__).with_name("default_schema.yaml")


class SchemaProvider(Protocol):
    def describe(self) -> str:
        ...


class YamlSchemaProvider:
    """Renders a YAML table catalogue into prompt text, once."""

    def __init__(self, schema_file: Optional[Union[str, Path]] = None):
        self.schema_file = Path(schema_file) if schema_file else DEFAULT_SCHEMA_PATH
        self._rendered: Optional[str] = None

    def _load(self) -> Dict[str, Any]:
        if not self.schema_file.exists():
            raise Misconfigured(f"Schema file not found: {self.schema_file}")
        with open(self.schema_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data.get("tables"), dict) or not data["tables"]:
            raise Misconfigured(f"Schema file {self.schema_file} defines no tables")
        return data

    @staticmethod
    def render(data: Dict[str, Any]) -> str:
        lines = []
        db = data.get("database") or {}
        if db:
            lines.append(f"Database: {db.get('name', 'unknown')} ({db.get('type', 'postgresql')})")
            lines.append("")

        for table_name, table in data["tables"].items():
            table = table or {}
            header = f"Table: {table_name}"
            if table.get("description"):
                header += f" - {table['description']}"
            lines.append(header)
            for col_name, col in (table.get("columns") or {}).items():
                col = col or {}
                line = f"  - {col_name} ({col.get('type', 'text')})"
                if col.get("description"):
                    line += f": {col['description']}"
                lines.append(line)
            lines.append("")

        return "\n".join(lines).rstrip() + "\n"

    def describe(self) -> str:
        if self._rendered is None:
            data = self._load()
            self._rendered = self.render(data)
            logger.info(f"[schema] loaded {len(data['tables'])} tables from {self.schema_file.name}")
        return self._rendered
