"""Pattern storage backends for the learning cache.

The cache only needs keyed get/put/delete plus a full listing; ranking and
filtering happen in the cache itself so every backend behaves the same.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from import_mapper.learning.models import MappingPattern

logger = logging.getLogger(__name__)


class CacheWriteError(Exception):
    """Raised when a pattern store cannot persist a change."""


class PatternStore(Protocol):
    def get(self, source_pattern: str) -> MappingPattern | None: ...

    def put(self, pattern: MappingPattern) -> None: ...

    def delete(self, source_patterns: list[str]) -> int: ...

    def list_patterns(self) -> list[MappingPattern]: ...


class InMemoryPatternStore:
    """Process-local store keyed by normalized source pattern."""

    def __init__(self, patterns: list[MappingPattern] | None = None) -> None:
        self._patterns: dict[str, MappingPattern] = {}
        for pattern in patterns or []:
            self._patterns[pattern.source_pattern] = pattern

    def get(self, source_pattern: str) -> MappingPattern | None:
        return self._patterns.get(source_pattern)

    def put(self, pattern: MappingPattern) -> None:
        self._patterns[pattern.source_pattern] = pattern

    def delete(self, source_patterns: list[str]) -> int:
        removed = 0
        for source_pattern in source_patterns:
            if self._patterns.pop(source_pattern, None) is not None:
                removed += 1
        return removed

    def list_patterns(self) -> list[MappingPattern]:
        return list(self._patterns.values())


class JsonPatternStore(InMemoryPatternStore):
    """Disk-backed store: one JSON document, hydrated at start-up.

    Contract: every write replaces the file atomically (temp file then
    rename). A failed write leaves the previous file intact and raises
    CacheWriteError.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path
        self.hydrate_from_disk()

    @property
    def path(self) -> Path:
        return self._path

    def hydrate_from_disk(self) -> None:
        self._patterns.clear()
        if not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable pattern store %s: %s", self._path, exc)
            return
        if not isinstance(raw, dict):
            logger.warning("Ignoring pattern store %s: expected a JSON object", self._path)
            return
        for item in raw.get("patterns", []):
            try:
                pattern = MappingPattern.model_validate(item)
            except ValidationError as exc:
                logger.warning("Skipping invalid stored pattern: %s", exc)
                continue
            self._patterns[pattern.source_pattern] = pattern

    def put(self, pattern: MappingPattern) -> None:
        previous = self._patterns.get(pattern.source_pattern)
        super().put(pattern)
        try:
            self._persist()
        except CacheWriteError:
            if previous is None:
                self._patterns.pop(pattern.source_pattern, None)
            else:
                self._patterns[pattern.source_pattern] = previous
            raise

    def delete(self, source_patterns: list[str]) -> int:
        previous = {
            key: self._patterns[key] for key in source_patterns if key in self._patterns
        }
        removed = super().delete(source_patterns)
        if removed:
            try:
                self._persist()
            except CacheWriteError:
                self._patterns.update(previous)
                raise
        return removed

    def _persist(self) -> None:
        payload = {
            "patterns": [
                pattern.model_dump(mode="json")
                for pattern in sorted(self._patterns.values(), key=lambda p: p.source_pattern)
            ]
        }
        temp_path = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(payload, indent=2))
            temp_path.replace(self._path)
        except OSError as exc:
            if temp_path.exists():
                temp_path.unlink()
            raise CacheWriteError(f"Failed to persist patterns to {self._path}: {exc}") from exc
