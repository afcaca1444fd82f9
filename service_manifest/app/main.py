"""
Manifest service for the Usernet access layer.

Serves per-client, per-service responses resolved from the manifest records
in ``ACCESS_MANIFEST_DIR``.
"""

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.logging import get_logger, set_manifest_service
from shared.metrics import MetricsCollector

from .engine import ResponseEngine
from .manifests.models import RequestContext
from .manifests.store import ManifestStore


class ManifestService(BaseService):
    """Manifest service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, metrics: Optional[MetricsCollector] = None):
        super().__init__("manifest", 8080, config=config or get_config("manifest", 8080), metrics=metrics)

        metrics_collector = self.metrics if self.config.enable_metrics else None
        self.store = ManifestStore(self.config.manifest_dir, metrics=metrics_collector)
        self.engine = ResponseEngine(
            self.store,
            metrics=metrics_collector,
            default_service=self.config.default_service,
        )
        self.request_logger = get_logger("manifest.requests")

        self._setup_manifest_routes()

    def _setup_manifest_routes(self):
        """Set up manifest routes."""

        @self.app.get("/")
        def root_manifest(request: Request):
            """Response of the default service."""
            return self._serve(request, "")

        @self.app.get("/{service_path:path}")
        def service_manifest(service_path: str, request: Request):
            """
            Response of the service named by the first path segment.

            Registered after the base routes, so services named health, metrics
            or docs are shadowed by them.
            """
            service_name = service_path.split("/", 1)[0]
            return self._serve(request, service_name)

    def _serve(self, request: Request, service_name: str) -> Response:
        context = self.build_context(request)
        set_manifest_service(service_name or self.config.default_service)

        self.request_logger.info(
            "Manifest request",
            service=service_name or self.config.default_service,
            user_agent=context.user_agent,
            country=context.country or None,
        )

        result = self.engine.resolve_response(service_name, context)
        return Response(content=result.body, media_type=result.content_type)

    def build_context(self, request: Request) -> RequestContext:
        """Extract the request context the engine matches against."""
        headers: Dict[str, List[str]] = {}
        for key, value in request.headers.items():
            headers.setdefault(key, []).append(value)

        country = (
            request.query_params.get(self.config.country_query_param)
            or request.headers.get(self.config.country_header)
            or ""
        )

        return RequestContext(
            user_agent=request.headers.get("user-agent", ""),
            accept_types=request.headers.getlist("accept"),
            headers=headers,
            country=country.strip(),
        )

    def _endpoint_label(self, request: Request) -> str:
        route = request.scope.get("route")
        return getattr(route, "path", request.url.path)

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Report manifest storage state."""
        return {
            "manifest_dir": "ok" if self.store.base_path.is_dir() else "missing",
            "cached_manifests": len(self.store.cached_services()),
        }


def create_app(config: Optional[ServiceConfig] = None) -> FastAPI:
    """Create the manifest service FastAPI app."""
    return ManifestService(config=config).app


def main():
    """Run the manifest service with uvicorn."""
    ManifestService().run()


if __name__ == "__main__":
    main()
