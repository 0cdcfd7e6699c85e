from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .logging import get_logger
from .types import SkillSource

logger = get_logger(__name__)

DEFAULT_MAX_FILE_BYTES = 10 * 1024 * 1024
DEFAULT_MAX_COUNT = 200
DEFAULT_CACHE_TTL_MS = 60_000
DEFAULT_LOAD_TIMEOUT_MS = 500

DEFAULT_WORKSPACE_DIRS = ("agent-skills",)
DEFAULT_BUNDLED_DIR = "skills/bundled"

# Deprecated: recognized so it can be reported, never honored.
LEGACY_DIRS_ENV = "SKILLS_DIRS"


def _read_env_bool(environ: Mapping[str, str], key: str, *, default: bool) -> bool:
    raw = environ.get(key)
    if raw is None:
        return bool(default)
    val = str(raw).strip().lower()
    if val in {"1", "true", "yes", "y", "on"}:
        return True
    if val in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _read_env_positive_int(environ: Mapping[str, str], key: str, *, default: int) -> int:
    raw = environ.get(key)
    if raw is None or not str(raw).strip():
        return int(default)
    try:
        val = int(str(raw).strip())
    except ValueError:
        return int(default)
    if val <= 0:
        return int(default)
    return val


def _split_dirs(raw: str | None, fallback: tuple[str, ...]) -> list[str]:
    value = (raw or "").strip()
    items = value.split(",") if value else list(fallback)
    return [item.strip() for item in items if item.strip()]


def _resolve_dir(cwd: Path, raw: str | None) -> Path | None:
    if not raw:
        return None
    try:
        path = Path(raw).expanduser()
    except RuntimeError:
        # unknown user or no resolvable home
        path = Path(raw)
    if not path.is_absolute():
        path = cwd / path
    return Path(os.path.normpath(path))


def _default_user_dir() -> str | None:
    try:
        return str(Path.home() / ".openchat" / "skills")
    except RuntimeError:
        logger.warning("Home directory cannot be resolved; user skills are disabled")
        return None


def _parse_runtime_config(raw: str | None) -> dict[str, Any]:
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


@dataclass(frozen=True)
class SkillsConfig:
    enabled: bool = True
    workspace_dirs: tuple[Path, ...] = ()
    user_dir: Path | None = None
    bundled_dir: Path | None = None
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    max_count: int = DEFAULT_MAX_COUNT
    cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS
    load_timeout_ms: int = DEFAULT_LOAD_TIMEOUT_MS
    cwd: Path = field(default_factory=Path.cwd)
    runtime_config: dict[str, Any] = field(default_factory=dict)

    @property
    def load_timeout_s(self) -> float:
        return self.load_timeout_ms / 1000.0

    @property
    def cache_ttl_s(self) -> float:
        return self.cache_ttl_ms / 1000.0

    @staticmethod
    def from_env(cwd: str | Path | None = None, environ: Mapping[str, str] | None = None) -> "SkillsConfig":
        return resolve_skills_config(cwd, environ)


def resolve_skills_config(cwd: str | Path | None = None, environ: Mapping[str, str] | None = None) -> SkillsConfig:
    """Build a config from the environment. Never raises; bad values fall back to defaults."""
    env = os.environ if environ is None else environ
    base = Path(cwd) if cwd is not None else Path.cwd()

    if env.get(LEGACY_DIRS_ENV):
        logger.warning("%s is deprecated and ignored; use SKILLS_WORKSPACE_DIRS", LEGACY_DIRS_ENV)

    workspace_dirs: list[Path] = []
    for raw in _split_dirs(env.get("SKILLS_WORKSPACE_DIRS"), DEFAULT_WORKSPACE_DIRS):
        resolved = _resolve_dir(base, raw)
        if resolved is not None and resolved not in workspace_dirs:
            workspace_dirs.append(resolved)

    user_default = None if env.get("VERCEL") else _default_user_dir()
    user_dir = _resolve_dir(base, (env.get("SKILLS_USER_DIR") or "").strip() or user_default)
    bundled_dir = _resolve_dir(base, (env.get("SKILLS_BUNDLED_DIR") or "").strip() or DEFAULT_BUNDLED_DIR)

    return SkillsConfig(
        enabled=_read_env_bool(env, "ENABLE_SKILLS", default=True),
        workspace_dirs=tuple(workspace_dirs),
        user_dir=user_dir,
        bundled_dir=bundled_dir,
        max_file_bytes=_read_env_positive_int(env, "SKILLS_MAX_FILE_BYTES", default=DEFAULT_MAX_FILE_BYTES),
        max_count=_read_env_positive_int(env, "SKILLS_MAX_COUNT", default=DEFAULT_MAX_COUNT),
        cache_ttl_ms=_read_env_positive_int(env, "SKILLS_CACHE_TTL_MS", default=DEFAULT_CACHE_TTL_MS),
        load_timeout_ms=_read_env_positive_int(env, "SKILLS_LOAD_TIMEOUT_MS", default=DEFAULT_LOAD_TIMEOUT_MS),
        cwd=base,
        runtime_config=_parse_runtime_config(env.get("SKILLS_RUNTIME_CONFIG_JSON")),
    )


@dataclass(frozen=True)
class SkillSourceRoot:
    source: SkillSource
    path: Path


def resolve_skill_source_roots(config: SkillsConfig) -> list[SkillSourceRoot]:
    roots = [SkillSourceRoot(source="workspace", path=p) for p in config.workspace_dirs]
    if config.user_dir is not None:
        roots.append(SkillSourceRoot(source="user", path=config.user_dir))
    if config.bundled_dir is not None:
        roots.append(SkillSourceRoot(source="bundled", path=config.bundled_dir))
    return roots
