"""
Manifest storage with an in-memory cache in front of JSON records on disk.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import ValidationError as SchemaValidationError

from shared.errors import MalformedManifest, ManifestIOError
from shared.locks import ReadWriteLock
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..documents import Document
from .models import ServiceManifest


MANIFEST_SUFFIX = ".json"


def sanitize_filename(service_name: str) -> str:
    """
    Map a service name onto a record file name.

    The scheme is dropped and path separators and colons become underscores,
    so ``http://a/b`` and ``https://a/b`` share one record. Case is kept.
    """
    name = service_name
    if name.startswith("https://"):
        name = name[len("https://"):]
    if name.startswith("http://"):
        name = name[len("http://"):]
    return name.replace("/", "_").replace(":", "_")


class ManifestStore:
    """Loads, caches and persists service manifests."""

    def __init__(self, base_path: Union[str, Path], metrics: Optional[MetricsCollector] = None):
        self._base_path = Path(base_path)
        self._manifests: Dict[str, ServiceManifest] = {}
        self._lock = ReadWriteLock()
        # Serializes updates so the record on disk and the cached entry agree
        self._persist_lock = threading.Lock()
        self._metrics = metrics
        self.logger = get_logger("manifest.store")

    @property
    def base_path(self) -> Path:
        return self._base_path

    @property
    def lock(self) -> ReadWriteLock:
        """Lock guarding the manifest cache and every renderer slot hanging off it."""
        return self._lock

    def manifest_path(self, service_name: str) -> Path:
        return self._base_path / f"{sanitize_filename(service_name)}{MANIFEST_SUFFIX}"

    def load(self, service_name: str) -> ServiceManifest:
        """
        Return the manifest for ``service_name``.

        Cached manifests are returned as is. Otherwise the record is read and
        parsed outside the lock and then published; if a concurrent load got
        there first, its instance wins. A missing record yields the fallback
        manifest, which is deliberately left out of the cache.
        """
        with self._lock.read_locked():
            cached = self._manifests.get(service_name)
        if cached is not None:
            self._record_cache("hit")
            return cached
        self._record_cache("miss")

        path = self.manifest_path(service_name)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            self.logger.info("No manifest record, serving fallback", service=service_name, path=str(path))
            return ServiceManifest.fallback()
        except OSError as e:
            self.logger.error("Error reading manifest", service=service_name, path=str(path), error=str(e))
            raise ManifestIOError(service_name, "Unable to read manifest", {"path": str(path), "error": str(e)}) from e

        manifest = self._parse(service_name, path, data)

        with self._lock.write_locked():
            published = self._manifests.setdefault(service_name, manifest)

        self.logger.info(
            "Manifest loaded",
            service=service_name,
            templates=len(published.templates),
            user_agent_cases=len(published.user_agent_cases),
            country_cases=len(published.country_cases),
        )
        return published

    def update(self, service_name: str, manifest: ServiceManifest) -> None:
        """
        Persist ``manifest`` and make it the cached rule set for the service.

        The record is written to a temporary file and renamed into place; on
        failure the cache keeps its previous entry.
        """
        path = self.manifest_path(service_name)
        payload = json.dumps(manifest.to_record(), indent=2, ensure_ascii=False)

        with self._persist_lock:
            try:
                self._write_atomic(path, payload)
            except OSError as e:
                self.logger.error("Error persisting manifest", service=service_name, path=str(path), error=str(e))
                raise ManifestIOError(service_name, "Unable to persist manifest", {"path": str(path), "error": str(e)}) from e

            with self._lock.write_locked():
                previous = self._manifests.get(service_name)
                self._manifests[service_name] = manifest
                if previous is not None:
                    previous.invalidate_renderers()
                manifest.invalidate_renderers()

        self.logger.info("Manifest updated", service=service_name, path=str(path))

    def invalidate(self, service_name: str) -> bool:
        """Drop a cached manifest so the next load rereads its record."""
        with self._lock.write_locked():
            previous = self._manifests.pop(service_name, None)
            if previous is not None:
                previous.invalidate_renderers()
        return previous is not None

    def cached_services(self) -> List[str]:
        with self._lock.read_locked():
            return list(self._manifests)

    def _parse(self, service_name: str, path: Path, data: bytes) -> ServiceManifest:
        try:
            raw = Document.parse(data).value
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self.logger.error("Manifest is not valid JSON", service=service_name, path=str(path), error=str(e))
            raise MalformedManifest(service_name, "Manifest is not valid JSON", {"path": str(path), "error": str(e)}) from e

        try:
            return ServiceManifest.model_validate(raw)
        except SchemaValidationError as e:
            self.logger.error("Manifest does not match schema", service=service_name, path=str(path), error=str(e))
            raise MalformedManifest(
                service_name,
                "Manifest does not match schema",
                {"path": str(path), "errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def _write_atomic(self, path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.write("\n")
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _record_cache(self, result: str) -> None:
        if self._metrics is not None:
            self._metrics.increment_counter("manifest_cache_total", result=result)
