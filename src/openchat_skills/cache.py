from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from .config import SkillsConfig
from .loader import load_skills_snapshot
from .logging import get_logger
from .security import BinaryLookup
from .telemetry import SkillsTelemetry
from .types import SkillsSnapshot

logger = get_logger(__name__)

SnapshotLoader = Callable[[SkillsConfig], Awaitable[SkillsSnapshot]]


def fingerprint_config(config: SkillsConfig) -> str:
    """Deterministic key over every field that changes scan output."""
    return json.dumps(
        {
            "enabled": config.enabled,
            "workspace_dirs": [str(p) for p in config.workspace_dirs],
            "user_dir": str(config.user_dir) if config.user_dir else None,
            "bundled_dir": str(config.bundled_dir) if config.bundled_dir else None,
            "max_file_bytes": config.max_file_bytes,
            "max_count": config.max_count,
            "cache_ttl_ms": config.cache_ttl_ms,
            "load_timeout_ms": config.load_timeout_ms,
            "runtime_config": config.runtime_config,
        },
        sort_keys=True,
        default=str,
    )


@dataclass
class _CacheEntry:
    """Empty (no snapshot, no task), Building (task set) or Ready (snapshot + expiry)."""

    fingerprint: str
    expires_at: float = 0.0
    snapshot: SkillsSnapshot | None = None
    in_flight: "asyncio.Task[SkillsSnapshot] | None" = None


def _consume_exception(task: "asyncio.Task[SkillsSnapshot]") -> None:
    if not task.cancelled():
        task.exception()


class SnapshotCache:
    """TTL cache of snapshots keyed by config fingerprint, with single-flight builds.

    All state transitions happen between awaits on one event loop, so no lock
    is needed. Entries for different fingerprints coexist.
    """

    def __init__(
        self,
        *,
        loader: SnapshotLoader | None = None,
        binaries: BinaryLookup | None = None,
        telemetry: SkillsTelemetry | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.binaries = binaries or BinaryLookup()
        self.telemetry = telemetry
        self._loader = loader or self._scan
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}

    async def _scan(self, config: SkillsConfig) -> SkillsSnapshot:
        return await load_skills_snapshot(config, binaries=self.binaries)

    async def get_snapshot(self, config: SkillsConfig) -> SkillsSnapshot:
        fingerprint = fingerprint_config(config)
        entry = self._entries.get(fingerprint)

        if entry is not None and entry.snapshot is not None and entry.expires_at > self._clock():
            return entry.snapshot

        if entry is not None and entry.in_flight is not None:
            return await asyncio.shield(entry.in_flight)

        if entry is None:
            entry = _CacheEntry(fingerprint=fingerprint)
            self._entries[fingerprint] = entry

        task = asyncio.get_running_loop().create_task(self._build(entry, config))
        task.add_done_callback(_consume_exception)
        entry.in_flight = task
        return await asyncio.shield(task)

    async def _build(self, entry: _CacheEntry, config: SkillsConfig) -> SkillsSnapshot:
        started = time.perf_counter()
        try:
            snapshot = await self._loader(config)
        except Exception:
            logger.exception("Skills snapshot build failed")
            entry.in_flight = None
            entry.snapshot = None
            entry.expires_at = 0.0
            raise

        duration_ms = (time.perf_counter() - started) * 1000.0
        if self.telemetry is not None:
            self.telemetry.record_snapshot(snapshot, duration_ms)

        entry.snapshot = snapshot
        entry.expires_at = self._clock() + config.cache_ttl_s
        entry.in_flight = None
        return snapshot

    def fingerprints(self) -> list[str]:
        return list(self._entries.keys())

    def reset(self) -> None:
        self._entries.clear()
