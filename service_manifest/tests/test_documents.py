"""
Unit tests for structured response documents.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_manifest.app.documents import Document
from shared.errors import InvalidOverride


class TestDocument:
    """Test cases for Document."""

    def test_parse_text_and_bytes(self):
        """JSON text and bytes decode to the same value."""
        assert Document.parse('{"a": 1}').value == {"a": 1}
        assert Document.parse(b'{"a": 1}').value == {"a": 1}

    def test_parse_decoded_value_is_kept(self):
        """Already decoded values are wrapped as is."""
        value = {"a": [1, 2]}
        assert Document.parse(value).value is value

    def test_merge_is_shallow_and_override_wins(self):
        """Override keys replace base keys; untouched keys survive."""
        base = Document({"a": 1, "b": 2})
        merged = base.merge(Document({"b": 3, "c": 4}))

        assert merged.value == {"a": 1, "b": 3, "c": 4}
        assert base.value == {"a": 1, "b": 2}

    def test_merge_replaces_nested_objects_wholesale(self):
        """Nested objects are not merged recursively."""
        base = Document({"endpoints": {"users": "/u", "orders": "/o"}})
        merged = base.merge(Document({"endpoints": {"users": "/m/u"}}))

        assert merged.value == {"endpoints": {"users": "/m/u"}}

    def test_merge_keeps_base_key_order(self):
        """Existing keys keep their position, new keys are appended."""
        merged = Document({"a": 1, "b": 2}).merge(Document({"c": 3, "a": 9}))
        assert list(merged.value) == ["a", "b", "c"]

    def test_merge_rejects_non_object_override(self):
        """Overrides must be objects."""
        with pytest.raises(InvalidOverride) as exc_info:
            Document({"a": 1}).merge(Document(["not", "an", "object"]), source="user_agent_cases[bot]")

        assert exc_info.value.details["source"] == "user_agent_cases[bot]"
        assert exc_info.value.status_code == 500

    def test_merge_null_override_is_noop(self):
        """A null override leaves the base untouched."""
        base = Document({"a": 1})
        merged = base.merge(Document(None))

        assert merged.value == {"a": 1}
        assert merged.value is not base.value

    def test_merge_rejects_non_object_base(self):
        """A scalar default response cannot take overrides."""
        with pytest.raises(InvalidOverride):
            Document("plain").merge(Document({"a": 1}))

    def test_to_json_is_compact_and_ordered(self):
        """Canonical JSON keeps authored order and drops whitespace."""
        document = Document({"b": 1, "a": "ü"})
        assert document.to_json() == '{"b":1,"a":"ü"}'
        assert document.to_text() == document.to_json()

    def test_is_empty(self):
        """Empty containers and null are empty; scalars are not."""
        assert Document(None).is_empty
        assert Document({}).is_empty
        assert Document([]).is_empty
        assert not Document({"a": 1}).is_empty
        assert not Document(0).is_empty

    def test_template_context(self):
        """Objects expose their keys, anything else is exposed as data."""
        assert Document({"a": 1}).template_context() == {"a": 1}
        assert Document([1, 2]).template_context() == {"data": [1, 2]}
