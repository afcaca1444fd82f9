"""
Response resolution engine for the manifest service.
"""

import time
from dataclasses import dataclass
from typing import Optional

from shared.errors import ManifestError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .documents import Document
from .manifests.models import RequestContext
from .manifests.store import ManifestStore
from .matching import ContextMatcher
from .negotiation import APPLICATION_JSON, negotiate
from .rendering import TemplateRenderer


DEFAULT_SERVICE = "_default"


@dataclass(frozen=True)
class EngineResponse:
    """Response body and its content type label."""
    body: str
    content_type: str


class ResponseEngine:
    """Single entry point turning (service, request context) into a response."""

    def __init__(
        self,
        store: ManifestStore,
        renderer: Optional[TemplateRenderer] = None,
        matcher: Optional[ContextMatcher] = None,
        metrics: Optional[MetricsCollector] = None,
        default_service: str = DEFAULT_SERVICE,
    ):
        self.store = store
        self.renderer = renderer or TemplateRenderer(store.lock, store.base_path, metrics=metrics)
        self.matcher = matcher or ContextMatcher()
        self.metrics = metrics
        self.default_service = default_service
        self.logger = get_logger("manifest.engine")

    def resolve_response(self, service_name: str, context: RequestContext) -> EngineResponse:
        """
        Resolve the response for one request.

        Loads the manifest, negotiates the content type (written back to
        ``context.preferred_type``), applies overrides and renders anything
        other than JSON. Errors propagate to the caller untouched.
        """
        service_name = service_name or self.default_service
        start_time = time.time()
        response_type = negotiate(context.accept_types)
        context.preferred_type = response_type

        try:
            manifest = self.store.load(service_name)
            document = self.matcher.resolve(manifest, context)

            if response_type == APPLICATION_JSON:
                response = EngineResponse(body=document.to_json(), content_type=APPLICATION_JSON)
            else:
                rendered = self.renderer.render(manifest, response_type, document)
                response = EngineResponse(body=rendered.body, content_type=rendered.content_type)
        except ManifestError as e:
            self.logger.error(
                "Manifest resolution failed",
                service=service_name,
                content_type=response_type,
                code=e.code,
                error=e.message,
            )
            self._record(response_type, "error", start_time)
            raise

        self.logger.debug(
            "Manifest response resolved",
            service=service_name,
            negotiated=response_type,
            content_type=response.content_type,
        )
        self._record(response.content_type, "ok", start_time)
        return response

    def response_for_user_agent(self, service_name: str, user_agent: str) -> Document:
        """Structured response for a bare user agent, without negotiation or rendering."""
        manifest = self.store.load(service_name or self.default_service)
        return self.matcher.resolve(manifest, RequestContext(user_agent=user_agent))

    def _record(self, content_type: str, outcome: str, start_time: float) -> None:
        if self.metrics is None:
            return
        self.metrics.increment_counter("manifest_resolutions_total", content_type=content_type, outcome=outcome)
        self.metrics.observe_histogram(
            "manifest_resolution_duration_seconds",
            time.time() - start_time,
            content_type=content_type,
        )
