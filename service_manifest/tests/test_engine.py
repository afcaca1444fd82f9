"""
Unit tests for the response engine.
"""

import json
import pytest
from unittest.mock import MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_manifest.app.engine import ResponseEngine
from service_manifest.app.manifests.models import FALLBACK_RESPONSE, RequestContext, ServiceManifest
from service_manifest.app.manifests.store import ManifestStore
from shared.errors import InvalidOverride, MalformedManifest, RenderError
from shared.metrics import MetricsCollector


class TestResponseEngine:
    """Test cases for ResponseEngine."""

    @pytest.fixture
    def manifest_dir(self, tmp_path):
        """Manifest directory with a default and a templated service."""
        (tmp_path / "_default.json").write_text(json.dumps({
            "default_response": {"name": "root"},
        }), encoding="utf-8")
        (tmp_path / "shop.json").write_text(json.dumps({
            "default_response": {"name": "Shop Front", "currency": "USD"},
            "user_agent_cases": {"Mobile": {"layout": "compact"}},
            "country_cases": {"DE": {"currency": "EUR"}},
            "templates": [
                {"content_type": "text/html", "template": "<p id=\"{{ name | urlize }}\">{{ currency }}</p>"},
                {"content_type": "text/plain", "template": "{{ name }} ({{ currency }})"},
            ],
        }), encoding="utf-8")
        return tmp_path

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("manifest")

    @pytest.fixture
    def engine(self, manifest_dir, metrics):
        """Create ResponseEngine over the manifest directory."""
        store = ManifestStore(manifest_dir, metrics=metrics)
        return ResponseEngine(store, metrics=metrics)

    def test_json_by_default(self, engine):
        """No accept header returns canonical JSON."""
        response = engine.resolve_response("shop", RequestContext())

        assert response.content_type == "application/json"
        assert response.body == '{"name":"Shop Front","currency":"USD"}'

    def test_empty_service_name_uses_default_service(self, engine):
        """The root service is the _default manifest."""
        response = engine.resolve_response("", RequestContext())
        assert json.loads(response.body) == {"name": "root"}

    def test_unknown_service_serves_fallback(self, engine):
        """Services without a record get the fallback response."""
        response = engine.resolve_response("nowhere", RequestContext())

        assert response.content_type == "application/json"
        assert json.loads(response.body) == FALLBACK_RESPONSE

    def test_negotiated_type_written_back(self, engine):
        """The engine records the negotiated type on the context."""
        context = RequestContext(accept_types=["text/plain", "text/html"])
        engine.resolve_response("shop", context)
        assert context.preferred_type == "text/html"

    def test_html_rendering_with_overrides(self, engine):
        """Overrides are applied before rendering."""
        context = RequestContext(user_agent="Mobile Safari", accept_types=["text/html"], country="DE")
        response = engine.resolve_response("shop", context)

        assert response.content_type == "text/html"
        assert response.body == '<p id="shop-front">EUR</p>'

    def test_plain_text_rendering(self, engine):
        """text/plain uses its own template."""
        response = engine.resolve_response("shop", RequestContext(accept_types=["text/plain"]))

        assert response.content_type == "text/plain"
        assert response.body == "Shop Front (USD)"

    def test_html_without_template_falls_back(self, engine):
        """Requests for unconfigured representations get plain text JSON."""
        response = engine.resolve_response("_default", RequestContext(accept_types=["text/html"]))

        assert response.content_type == "text/plain"
        assert response.body == '{"name":"root"}'

    def test_json_includes_merged_overrides(self, engine):
        """JSON responses carry the merged document."""
        context = RequestContext(user_agent="Mobile", country="DE", accept_types=["application/json"])
        response = engine.resolve_response("shop", context)

        assert json.loads(response.body) == {"name": "Shop Front", "currency": "EUR", "layout": "compact"}

    def test_idempotent(self, engine):
        """Repeated resolutions are byte-identical."""
        context = RequestContext(user_agent="Mobile", accept_types=["text/html"])
        first = engine.resolve_response("shop", context)
        second = engine.resolve_response("shop", context)
        assert first == second

    def test_malformed_manifest_propagates(self, engine, manifest_dir, metrics):
        """Malformed manifests fail only their own service."""
        (manifest_dir / "bad.json").write_text("{", encoding="utf-8")

        with pytest.raises(MalformedManifest):
            engine.resolve_response("bad", RequestContext())

        assert engine.resolve_response("shop", RequestContext()).content_type == "application/json"
        assert metrics.sample_value(
            "manifest_resolutions_total", {"content_type": "application/json", "outcome": "error"}
        ) == 1.0

    def test_invalid_override_propagates(self, engine, manifest_dir):
        """Invalid overrides fail the resolution."""
        (manifest_dir / "odd.json").write_text(json.dumps({
            "default_response": {"a": 1},
            "user_agent_cases": {"bot": 42},
        }), encoding="utf-8")

        with pytest.raises(InvalidOverride):
            engine.resolve_response("odd", RequestContext(user_agent="bot"))

    def test_render_error_propagates(self, engine, manifest_dir):
        """Template execution failures surface as RenderError."""
        (manifest_dir / "tpl.json").write_text(json.dumps({
            "default_response": {"a": 1},
            "templates": [{"content_type": "text/plain", "template": "{{ missing.field }}"}],
        }), encoding="utf-8")

        with pytest.raises(RenderError):
            engine.resolve_response("tpl", RequestContext(accept_types=["text/plain"]))

    def test_update_then_resolve_uses_new_template(self, engine):
        """Updated manifests are rendered with their new templates."""
        context = RequestContext(accept_types=["text/plain"])
        assert engine.resolve_response("shop", context).body == "Shop Front (USD)"

        engine.store.update("shop", ServiceManifest.model_validate({
            "default_response": {"name": "Shop Front"},
            "templates": [{"content_type": "text/plain", "template": "v2 {{ name }}"}],
        }))

        assert engine.resolve_response("shop", context).body == "v2 Shop Front"

    def test_resolution_metrics(self, engine, metrics):
        """Successful resolutions are counted by served content type."""
        engine.resolve_response("shop", RequestContext(accept_types=["text/html"]))
        engine.resolve_response("shop", RequestContext())

        assert metrics.sample_value(
            "manifest_resolutions_total", {"content_type": "text/html", "outcome": "ok"}
        ) == 1.0
        assert metrics.sample_value(
            "manifest_resolutions_total", {"content_type": "application/json", "outcome": "ok"}
        ) == 1.0

    def test_response_for_user_agent(self, engine):
        """User agent matching without negotiation."""
        document = engine.response_for_user_agent("shop", "Mobile Chrome")
        assert document.value == {"name": "Shop Front", "currency": "USD", "layout": "compact"}

    def test_injected_collaborators(self):
        """Store and matcher can be replaced."""
        store = MagicMock()
        store.load.return_value = ServiceManifest.model_validate({"default_response": {"x": 1}})
        matcher = MagicMock()
        matcher.resolve.return_value = store.load.return_value.default_document

        engine = ResponseEngine(store, renderer=MagicMock(), matcher=matcher)
        response = engine.resolve_response("svc", RequestContext())

        store.load.assert_called_once_with("svc")
        assert response.body == '{"x":1}'
