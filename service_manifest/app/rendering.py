"""
Template rendering for non-JSON manifest responses.

Templates are compiled lazily, once per (manifest instance, content type),
and the compiled form is attached to the manifest in a ``RendererSlot``.
Slots move through ``uncompiled -> compiling -> compiled`` and drop to
``invalidated`` when the store replaces their manifest; the next render
compiles again.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

from jinja2 import Environment, StrictUndefined, Template, TemplateError

from shared.errors import RenderError
from shared.locks import ReadWriteLock
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .documents import Document
from .manifests.models import ResponseTemplate, ServiceManifest
from .negotiation import TEXT_HTML, TEXT_PLAIN


def urlize(value) -> str:
    """Lowercase and turn spaces and underscores into hyphens."""
    return str(value).lower().replace(" ", "-").replace("_", "-")


def build_environment(autoescape: bool) -> Environment:
    """Jinja environment response templates are compiled in."""
    environment = Environment(
        autoescape=autoescape,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    # Replaces Jinja's builtin urlize filter
    environment.filters["urlize"] = urlize
    environment.globals["urlize"] = urlize
    return environment


class SlotState(str, Enum):
    """Lifecycle of a compiled renderer."""
    UNCOMPILED = "uncompiled"
    COMPILING = "compiling"
    COMPILED = "compiled"
    INVALIDATED = "invalidated"


class RendererSlot:
    """Compiled template state for one content type of one manifest instance.

    Every transition happens with the store lock held exclusively.
    """

    def __init__(self, content_type: str):
        self.content_type = content_type
        self.state = SlotState.UNCOMPILED
        self.template: Optional[Template] = None
        self.generation = 0

    def begin_compile(self) -> int:
        if self.state is not SlotState.COMPILED:
            self.state = SlotState.COMPILING
        return self.generation

    def publish(self, template: Template, generation: int) -> bool:
        """Install ``template`` unless a racer already did or the slot went stale."""
        if generation != self.generation or self.state is SlotState.COMPILED:
            return False
        self.template = template
        self.state = SlotState.COMPILED
        return True

    def abort(self, generation: int) -> None:
        if generation == self.generation and self.state is SlotState.COMPILING:
            self.state = SlotState.UNCOMPILED

    def invalidate(self) -> None:
        self.generation += 1
        self.template = None
        self.state = SlotState.INVALIDATED


@dataclass(frozen=True)
class RenderResult:
    """Rendered body and the content type it should be served as."""
    body: str
    content_type: str


class TemplateRenderer:
    """Renders documents through the templates configured on a manifest."""

    def __init__(
        self,
        lock: ReadWriteLock,
        base_path: Union[str, Path],
        metrics: Optional[MetricsCollector] = None,
    ):
        self._lock = lock
        self._base_path = Path(base_path)
        self._metrics = metrics
        self._environments: Dict[bool, Environment] = {
            autoescape: build_environment(autoescape) for autoescape in (False, True)
        }
        self.compile_count = 0
        self.logger = get_logger("manifest.renderer")

    def render(self, manifest: ServiceManifest, content_type: str, document: Document) -> RenderResult:
        """
        Render ``document`` as ``content_type``.

        Content types without a configured template fall back to the plain
        text form of the document, served as ``text/plain``.
        """
        response_template = manifest.template_for(content_type)
        if response_template is None:
            self.logger.debug("No template configured, falling back to plain text", content_type=content_type)
            return RenderResult(body=document.to_text(), content_type=TEXT_PLAIN)

        compiled = self._compiled_template(manifest, response_template)

        try:
            body = compiled.render(document.template_context())
        except Exception as e:
            self.logger.error("Template execution failed", content_type=content_type, error=str(e))
            raise RenderError(
                content_type,
                "Template execution failed",
                {"stage": "execute", "error": str(e)},
            ) from e

        return RenderResult(body=body, content_type=content_type)

    def slot_for(self, manifest: ServiceManifest, content_type: str) -> Optional[RendererSlot]:
        with self._lock.read_locked():
            return manifest.renderer_slots().get(content_type)

    def _compiled_template(self, manifest: ServiceManifest, response_template: ResponseTemplate) -> Template:
        content_type = response_template.content_type
        slots = manifest.renderer_slots()

        with self._lock.read_locked():
            slot = slots.get(content_type)
            if slot is not None and slot.state is SlotState.COMPILED:
                return slot.template

        with self._lock.write_locked():
            slot = slots.get(content_type)
            if slot is None:
                slot = RendererSlot(content_type)
                slots[content_type] = slot
            if slot.state is SlotState.COMPILED:
                return slot.template
            generation = slot.begin_compile()

        try:
            compiled = self._compile(response_template)
        except RenderError:
            with self._lock.write_locked():
                slot.abort(generation)
            raise

        with self._lock.write_locked():
            self.compile_count += 1
            if not slot.publish(compiled, generation) and slot.state is SlotState.COMPILED:
                # Another request published first; everyone shares its template
                compiled = slot.template

        if self._metrics is not None:
            self._metrics.increment_counter("template_compilations_total", content_type=content_type)
        return compiled

    def _compile(self, response_template: ResponseTemplate) -> Template:
        content_type = response_template.content_type
        source = self._load_source(response_template)

        self.logger.info("Compiling template", content_type=content_type, template_file=response_template.template_file)
        environment = self._environments[content_type == TEXT_HTML]
        try:
            return environment.from_string(source)
        except TemplateError as e:
            self.logger.error("Template compilation failed", content_type=content_type, error=str(e))
            raise RenderError(
                content_type,
                "Template compilation failed",
                {"stage": "compile", "error": str(e)},
            ) from e

    def _load_source(self, response_template: ResponseTemplate) -> str:
        if not response_template.template_file:
            return response_template.template or ""

        path = self._base_path / response_template.template_file
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self.logger.error("Error reading template file", path=str(path), error=str(e))
            raise RenderError(
                response_template.content_type,
                "Template file could not be read",
                {"stage": "load", "path": str(path), "error": str(e)},
            ) from e
