"""
Manifest data models for the manifest service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from ..documents import Document


FALLBACK_RESPONSE: Dict[str, Any] = {"message": "No manifest available for this service"}


class ResponseTemplate(BaseModel):
    """Template used to render one non-JSON content type."""

    model_config = ConfigDict(extra="ignore")

    content_type: str = Field(..., description="Content type the template produces")
    template: Optional[str] = Field(None, description="Inline template source")
    template_file: Optional[str] = Field(None, description="Template path relative to the manifest directory")

    @property
    def has_source(self) -> bool:
        return bool(self.template_file) or self.template is not None


class ServiceManifest(BaseModel):
    """
    Rule set for one service.

    ``user_agent_cases`` and ``country_cases`` map a pattern (or country code)
    to a partial response document. Dicts keep the order the cases were
    authored in and that order decides which user agent case matches first.
    """

    model_config = ConfigDict(extra="ignore")

    default_response: Any = Field(default=None, validate_default=True, description="Base response document")
    user_agent_cases: Dict[str, Any] = Field(default_factory=dict, description="User agent substring overrides")
    country_cases: Dict[str, Any] = Field(default_factory=dict, description="Country code overrides")
    templates: List[ResponseTemplate] = Field(default_factory=list, description="Renderers per content type")

    # content type -> RendererSlot, owned by the template renderer
    _renderer_slots: Dict[str, Any] = PrivateAttr(default_factory=dict)

    @field_validator("default_response", mode="after")
    @classmethod
    def _ensure_default_response(cls, value: Any) -> Any:
        if value is None:
            return dict(FALLBACK_RESPONSE)
        return value

    @field_validator("user_agent_cases", "country_cases", mode="before")
    @classmethod
    def _null_cases_are_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("templates", mode="before")
    @classmethod
    def _null_templates_are_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @classmethod
    def fallback(cls) -> "ServiceManifest":
        """Minimal rule set served for services without a manifest record."""
        return cls(default_response=dict(FALLBACK_RESPONSE))

    @property
    def default_document(self) -> Document:
        return Document(self.default_response)

    def template_for(self, content_type: str) -> Optional[ResponseTemplate]:
        """First template configured for exactly ``content_type``."""
        for template in self.templates:
            if template.content_type == content_type:
                return template
        return None

    def renderer_slots(self) -> Dict[str, Any]:
        return self._renderer_slots

    def invalidate_renderers(self) -> None:
        """Mark every compiled renderer of this instance stale. Caller holds the store lock."""
        for slot in self._renderer_slots.values():
            slot.invalidate()

    def to_record(self) -> Dict[str, Any]:
        """Serializable form using the persisted field names."""
        record: Dict[str, Any] = {
            "default_response": self.default_response,
            "user_agent_cases": self.user_agent_cases,
            "country_cases": self.country_cases,
        }
        if self.templates:
            record["templates"] = [
                template.model_dump(exclude_none=True) for template in self.templates
            ]
        return record


@dataclass
class RequestContext:
    """Everything the engine knows about one inbound request."""

    user_agent: str = ""
    accept_types: List[str] = field(default_factory=list)
    headers: Dict[str, List[str]] = field(default_factory=dict)
    country: str = ""
    # Written by the engine once the response type has been negotiated
    preferred_type: Optional[str] = None
