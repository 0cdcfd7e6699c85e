"""Path safety, I/O timeouts and metadata-driven eligibility gating.

Skills are data only; nothing here executes skill content. The only
subprocess-adjacent work is resolving required executables on ``PATH``.

Eligibility is declared under ``metadata.openchat``::

    metadata:
      openchat:
        always: false
        requires:
          os: [linux, darwin]
          env: [OPENAI_API_KEY]
          bins: [git]
          config: [flow.mode]

Anything missing or wrong-shaped is treated as "no requirement" (fail-open).
"""

from __future__ import annotations

import asyncio
import os
import shutil
import stat
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from .config import SkillsConfig

T = TypeVar("T")

METADATA_NAMESPACE = "openchat"


class LoadTimeoutError(TimeoutError):
    pass


async def with_timeout(awaitable: Awaitable[T], timeout_s: float, message: str) -> T:
    if timeout_s <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        raise LoadTimeoutError(message) from exc


async def run_io(fn: Callable[..., T], *args: Any, timeout_s: float, message: str) -> T:
    """Run a blocking filesystem call off the event loop, bounded by ``timeout_s``."""
    return await with_timeout(asyncio.to_thread(fn, *args), timeout_s, message)


def is_path_within_root(root: str | Path, target: str | Path) -> bool:
    root_abs = os.path.abspath(root)
    target_abs = os.path.abspath(target)
    try:
        rel = os.path.relpath(target_abs, root_abs)
    except ValueError:
        # different drives on Windows
        return False
    if rel == os.curdir:
        return True
    if os.path.isabs(rel):
        return False
    return rel != os.pardir and not rel.startswith(os.pardir + os.sep)


def _lstat_is_symlink(path: str) -> bool:
    return stat.S_ISLNK(os.lstat(path).st_mode)


async def is_symlink_path(path: str | Path, timeout_s: float) -> bool:
    return await run_io(
        _lstat_is_symlink,
        str(path),
        timeout_s=timeout_s,
        message=f"Timed out while reading path stats: {path}",
    )


class BinaryLookup:
    """Process-wide cache of executable lookups.

    This is long-lived mutable state; call :meth:`reset` between tests.
    """

    def __init__(self, which: Callable[[str], str | None] = shutil.which):
        self._which = which
        self._lock = threading.Lock()
        self._cache: dict[str, bool] = {}

    async def exists(self, name: str) -> bool:
        with self._lock:
            if name in self._cache:
                return self._cache[name]
        found = (await asyncio.to_thread(self._which, name)) is not None
        with self._lock:
            self._cache[name] = found
        return found

    def cached(self) -> dict[str, bool]:
        with self._lock:
            return dict(self._cache)

    def reset(self) -> None:
        with self._lock:
            self._cache.clear()


def _string_list(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(item.strip() for item in value if isinstance(item, str) and item.strip())


@dataclass(frozen=True)
class SkillRequirements:
    os: tuple[str, ...] = ()
    env: tuple[str, ...] = ()
    bins: tuple[str, ...] = ()
    config: tuple[str, ...] = ()

    @staticmethod
    def from_value(value: object) -> "SkillRequirements | None":
        if not isinstance(value, dict):
            return None
        return SkillRequirements(
            os=_string_list(value.get("os")),
            env=_string_list(value.get("env")),
            bins=_string_list(value.get("bins")),
            config=_string_list(value.get("config")),
        )


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: str | None = None


def get_nested_value(root: Mapping[str, Any], path: str) -> Any:
    current: Any = root
    for segment in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
    return current


async def is_skill_eligible(
    metadata: Mapping[str, Any],
    config: SkillsConfig,
    *,
    binaries: BinaryLookup | None = None,
    environ: Mapping[str, str] | None = None,
    platform: str | None = None,
    namespace: str = METADATA_NAMESPACE,
) -> Eligibility:
    vendor = metadata.get(namespace) if isinstance(metadata, Mapping) else None
    if not isinstance(vendor, dict):
        return Eligibility(eligible=True)
    if vendor.get("always") is True:
        return Eligibility(eligible=True)

    requires = SkillRequirements.from_value(vendor.get("requires"))
    if requires is None:
        return Eligibility(eligible=True)

    current_platform = platform or sys.platform
    if requires.os and current_platform not in requires.os:
        return Eligibility(eligible=False, reason=f"os requirement not met ({current_platform})")

    env = os.environ if environ is None else environ
    for name in requires.env:
        if not env.get(name):
            return Eligibility(eligible=False, reason=f"env requirement not met ({name})")

    lookup = binaries if binaries is not None else BinaryLookup()
    for name in requires.bins:
        if not await lookup.exists(name):
            return Eligibility(eligible=False, reason=f"binary requirement not met ({name})")

    for path in requires.config:
        if not get_nested_value(config.runtime_config, path):
            return Eligibility(eligible=False, reason=f"config requirement not met ({path})")

    return Eligibility(eligible=True)
