from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

SkillSource = Literal["workspace", "user", "bundled"]

# Precedence order, highest first.
SKILL_SOURCES: tuple[SkillSource, ...] = ("workspace", "user", "bundled")

SkillLoadErrorCode = Literal[
    "directory_unreadable",
    "entry_not_directory",
    "entry_symlink_ignored",
    "path_escape_blocked",
    "skill_file_missing",
    "skill_file_too_large",
    "skill_file_unreadable",
    "skill_parse_invalid",
    "skill_gated",
    "skill_name_duplicate",
    "max_count_reached",
    "load_timeout",
    "runtime_read_failed",
]

InvocationSource = Literal["tool", "explicit_directive", "internal"]

SKILL_FILE_NAME = "SKILL.md"
MAX_DESCRIPTION_CHARS = 1024


@dataclass(frozen=True)
class SkillMetadata:
    name: str
    description: str
    source: SkillSource
    skill_dir: Path
    skill_file: Path
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "source": self.source,
            "skill_dir": str(self.skill_dir),
            "skill_file": str(self.skill_file),
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class SkillLoadError:
    """Observational record; collected, never raised."""

    code: SkillLoadErrorCode
    source: SkillSource
    reason: str
    path: str | None = None
    skill_name: str | None = None

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "source": self.source,
            "reason": self.reason,
            "path": self.path,
            "skill_name": self.skill_name,
        }


@dataclass
class SourceStats:
    discovered: int = 0
    loaded: int = 0
    skipped: int = 0

    def to_public_dict(self) -> dict[str, int]:
        return {"discovered": int(self.discovered), "loaded": int(self.loaded), "skipped": int(self.skipped)}


def create_source_stats() -> dict[SkillSource, SourceStats]:
    return {source: SourceStats() for source in SKILL_SOURCES}


@dataclass(frozen=True)
class SkillsSnapshot:
    skills: list[SkillMetadata]
    loaded_at: float
    source_stats: dict[SkillSource, SourceStats]
    errors: list[SkillLoadError]

    def has_error(self, code: SkillLoadErrorCode) -> bool:
        return any(err.code == code for err in self.errors)

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "skills": [s.to_public_dict() for s in self.skills],
            "loaded_at": float(self.loaded_at),
            "source_stats": {k: v.to_public_dict() for k, v in self.source_stats.items()},
            "errors": [e.to_public_dict() for e in self.errors],
        }


@dataclass(frozen=True)
class SkillFrontmatter:
    name: str
    description: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParsedSkillDocument:
    frontmatter: SkillFrontmatter
    body: str


@dataclass(frozen=True)
class LoadedSkill:
    name: str
    skill_directory: Path
    content: str


@dataclass(frozen=True)
class LoadContext:
    """Passed through to telemetry only; never changes loading."""

    source: InvocationSource | None = None
    invoked_tool_name: str | None = None
