"""
Manifest service application package.
"""

from .documents import Document
from .engine import DEFAULT_SERVICE, EngineResponse, ResponseEngine
from .manifests import ManifestStore, RequestContext, ResponseTemplate, ServiceManifest
from .matching import ContextMatcher
from .negotiation import negotiate
from .rendering import RenderResult, TemplateRenderer

__all__ = [
    "DEFAULT_SERVICE",
    "ContextMatcher",
    "Document",
    "EngineResponse",
    "ManifestStore",
    "RenderResult",
    "RequestContext",
    "ResponseEngine",
    "ResponseTemplate",
    "ServiceManifest",
    "TemplateRenderer",
    "negotiate",
]
