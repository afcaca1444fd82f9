"""
Structured response documents.

A ``Document`` wraps one decoded JSON value (null, bool, number, string,
ordered mapping or list). Mappings keep the key order they were authored
in, which makes both merging and serialization reproducible.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Union

from shared.errors import InvalidOverride


JsonValue = Union[None, bool, int, float, str, list, dict]


@dataclass(frozen=True)
class Document:
    """Immutable view over a structured JSON value."""

    value: JsonValue = None

    @classmethod
    def parse(cls, raw: Any) -> "Document":
        """Build a document from JSON text/bytes or an already decoded value."""
        if isinstance(raw, Document):
            return raw
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        if isinstance(raw, str):
            return cls(json.loads(raw))
        return cls(raw)

    @property
    def is_mapping(self) -> bool:
        return isinstance(self.value, Mapping)

    @property
    def is_empty(self) -> bool:
        if self.value is None:
            return True
        if isinstance(self.value, (Mapping, list, str)):
            return len(self.value) == 0
        return False

    def merge(self, override: "Document", *, source: str = "override") -> "Document":
        """
        Shallow merge ``override`` onto this document.

        Override keys replace base keys wholesale; base keys the override does
        not mention are kept. Nested mappings are never merged recursively.
        A null override changes nothing.
        """
        if not self.is_mapping:
            raise InvalidOverride(
                "Base document is not an object",
                details={"source": source, "base_type": type(self.value).__name__},
            )
        if override.value is None:
            return Document(dict(self.value))
        if not override.is_mapping:
            raise InvalidOverride(
                "Override document is not an object",
                details={"source": source, "override_type": type(override.value).__name__},
            )

        merged = dict(self.value)
        merged.update(override.value)
        return Document(merged)

    def to_json(self) -> str:
        """Canonical compact JSON text."""
        return json.dumps(self.value, ensure_ascii=False, separators=(",", ":"))

    def to_text(self) -> str:
        """Plain-text stringification used when no renderer is configured."""
        return self.to_json()

    def template_context(self) -> dict:
        """Variables a response template sees for this document."""
        if self.is_mapping:
            return dict(self.value)
        return {"data": self.value}
