from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Mapping

from .cache import SnapshotCache, SnapshotLoader
from .config import SkillsConfig, resolve_skills_config
from .loader import create_empty_snapshot, load_skills_snapshot
from .logging import get_logger
from .runtime import build_explicit_skills_prompt, load_skill_by_name
from .security import BinaryLookup
from .telemetry import SkillsTelemetry
from .types import LoadContext, LoadedSkill, SkillMetadata, SkillsSnapshot

logger = get_logger(__name__)


class SkillsService:
    """Owns the long-lived state: snapshot cache, executable lookup cache and metrics.

    Create one per process and pass it to whatever serves chat requests.
    """

    def __init__(
        self,
        *,
        telemetry: SkillsTelemetry | None = None,
        binaries: BinaryLookup | None = None,
        loader: SnapshotLoader | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.telemetry = telemetry or SkillsTelemetry()
        self.binaries = binaries or BinaryLookup()
        self.cache = SnapshotCache(loader=loader, binaries=self.binaries, telemetry=self.telemetry, clock=clock)

    def config(self, cwd: str | Path | None = None, environ: Mapping[str, str] | None = None) -> SkillsConfig:
        return resolve_skills_config(cwd, environ)

    async def get_snapshot(self, config: SkillsConfig | None = None) -> SkillsSnapshot:
        return await self.cache.get_snapshot(config or self.config())

    async def get_snapshot_or_empty(self, config: SkillsConfig | None = None) -> SkillsSnapshot:
        """Fail-open variant for request handlers: a failed build yields zero skills."""
        try:
            return await self.get_snapshot(config)
        except Exception:
            logger.exception("Skills snapshot load failed (fail-open)")
            return create_empty_snapshot()

    async def discover_skills(self, config: SkillsConfig | None = None) -> list[SkillMetadata]:
        """Uncached scan; used by listings that must reflect the disk right now."""
        snapshot = await load_skills_snapshot(config or self.config(), binaries=self.binaries)
        return snapshot.skills

    async def load_skill(
        self,
        skills: list[SkillMetadata],
        name: str,
        config: SkillsConfig,
        context: LoadContext | None = None,
    ) -> LoadedSkill | None:
        return await load_skill_by_name(skills, name, config, context=context, telemetry=self.telemetry)

    async def execute_load_skill_tool(
        self,
        skills: list[SkillMetadata],
        name: str,
        config: SkillsConfig,
        invoked_tool_name: str = "loadSkill",
    ) -> dict[str, Any]:
        """Result payload handed back to the model for a ``loadSkill`` tool call."""
        loaded = await self.load_skill(
            skills, name, config, LoadContext(source="tool", invoked_tool_name=invoked_tool_name)
        )
        if loaded is None:
            return {"error": f"Skill '{name}' not found", "available_skills": [s.name for s in skills]}
        return {"name": loaded.name, "skill_directory": str(loaded.skill_directory), "content": loaded.content}

    async def load_requested_skills(
        self,
        skills: list[SkillMetadata],
        names: list[str],
        config: SkillsConfig,
    ) -> tuple[list[LoadedSkill], list[str]]:
        """Resolve ``[Use Skill: X]`` names. Returns ``(loaded, missing)``."""
        loaded: list[LoadedSkill] = []
        missing: list[str] = []
        context = LoadContext(source="explicit_directive")
        for name in names:
            result = await self.load_skill(skills, name, config, context)
            if result is None:
                missing.append(name)
            else:
                loaded.append(result)
        if names:
            logger.info(
                "Explicit skill directives resolved: loaded=%s missing=%s",
                [s.name for s in loaded],
                missing,
            )
        return loaded, missing

    async def build_explicit_prompt(
        self,
        skills: list[SkillMetadata],
        names: list[str],
        config: SkillsConfig,
    ) -> str:
        loaded, _missing = await self.load_requested_skills(skills, names, config)
        return build_explicit_skills_prompt(loaded)

    def metrics(self) -> dict[str, float]:
        return self.telemetry.metrics.snapshot()

    def reset(self) -> None:
        """Drop every cache and counter. Meant for test isolation."""
        self.cache.reset()
        self.binaries.reset()
        self.telemetry.metrics.reset()
