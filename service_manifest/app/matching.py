"""
Request context matching for the manifest service.
"""

from typing import Optional, Tuple

from shared.errors import InvalidOverride
from shared.logging import get_logger

from .documents import Document
from .manifests.models import RequestContext, ServiceManifest


class ContextMatcher:
    """Applies country and user agent overrides onto a manifest's default response."""

    def __init__(self):
        self.logger = get_logger("manifest.matcher")

    def resolve(self, manifest: ServiceManifest, context: RequestContext) -> Document:
        """
        Build the structured response for ``context``.

        The country case is merged first, then at most one user agent case:
        the first pattern, in authored order, contained in the user agent.
        """
        response = manifest.default_document

        if context.country:
            if context.country in manifest.country_cases:
                override = manifest.country_cases[context.country]
                response = self._merge(response, override, f"country_cases[{context.country}]")

        if context.user_agent:
            match = self.match_user_agent(manifest, context.user_agent)
            if match is not None:
                pattern, override = match
                response = self._merge(response, override, f"user_agent_cases[{pattern}]")

        return response

    def match_user_agent(self, manifest: ServiceManifest, user_agent: str) -> Optional[Tuple[str, object]]:
        """First (pattern, override) whose pattern occurs in ``user_agent``."""
        for pattern, override in manifest.user_agent_cases.items():
            if pattern in user_agent:
                return pattern, override
        return None

    def _merge(self, base: Document, override: object, source: str) -> Document:
        try:
            merged = base.merge(Document(override), source=source)
        except InvalidOverride:
            self.logger.error("Invalid override", source=source)
            raise

        self.logger.debug("Override applied", source=source)
        return merged
