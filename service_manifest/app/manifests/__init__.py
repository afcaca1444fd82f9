"""
Manifest models and storage for the manifest service.
"""

from .models import FALLBACK_RESPONSE, RequestContext, ResponseTemplate, ServiceManifest
from .store import ManifestStore, sanitize_filename

__all__ = [
    "FALLBACK_RESPONSE",
    "ManifestStore",
    "RequestContext",
    "ResponseTemplate",
    "ServiceManifest",
    "sanitize_filename",
]
