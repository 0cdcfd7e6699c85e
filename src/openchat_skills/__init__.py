"""Skill discovery and progressive-disclosure loading for LLM chat runtimes.

Skills are directories holding a ``SKILL.md`` (YAML front matter + Markdown
body). They are scanned from workspace, user and bundled roots, in that
precedence order, gated on declared requirements and cached per config.

Security model:
- Skills are data only. Nothing in a skill directory is executed.
- Symlinked skill directories and paths escaping their root are rejected.
- Every failure is recorded on the snapshot; scanning never raises.
"""

from __future__ import annotations

from .cache import SnapshotCache, fingerprint_config
from .config import SkillsConfig, resolve_skill_source_roots, resolve_skills_config
from .directives import (
    SkillDirectives,
    collect_directive_names_from_parts,
    collect_directive_names_from_request_body,
    extract_skill_directives,
    strip_directives_from_messages,
)
from .loader import create_empty_snapshot, load_skills_snapshot
from .parser import SkillParseError, parse_skill_document, parse_skill_frontmatter, strip_frontmatter
from .runtime import (
    LOAD_SKILL_TOOL_NAME,
    build_explicit_skills_prompt,
    build_skills_system_prompt,
    list_skill_commands,
    load_skill_by_name,
    load_skill_tool_definitions,
    should_enable_skill_tooling,
)
from .security import BinaryLookup, LoadTimeoutError, is_skill_eligible, with_timeout
from .service import SkillsService
from .telemetry import SkillsMetrics, SkillsTelemetry
from .types import (
    LoadContext,
    LoadedSkill,
    ParsedSkillDocument,
    SkillLoadError,
    SkillLoadErrorCode,
    SkillMetadata,
    SkillSource,
    SkillsSnapshot,
    SourceStats,
)

__all__ = [
    "BinaryLookup",
    "LOAD_SKILL_TOOL_NAME",
    "LoadContext",
    "LoadTimeoutError",
    "LoadedSkill",
    "ParsedSkillDocument",
    "SkillDirectives",
    "SkillLoadError",
    "SkillLoadErrorCode",
    "SkillMetadata",
    "SkillParseError",
    "SkillSource",
    "SkillsConfig",
    "SkillsMetrics",
    "SkillsService",
    "SkillsSnapshot",
    "SkillsTelemetry",
    "SnapshotCache",
    "SourceStats",
    "build_explicit_skills_prompt",
    "build_skills_system_prompt",
    "collect_directive_names_from_parts",
    "collect_directive_names_from_request_body",
    "create_empty_snapshot",
    "extract_skill_directives",
    "fingerprint_config",
    "is_skill_eligible",
    "list_skill_commands",
    "load_skill_by_name",
    "load_skill_tool_definitions",
    "load_skills_snapshot",
    "parse_skill_document",
    "parse_skill_frontmatter",
    "resolve_skill_source_roots",
    "resolve_skills_config",
    "should_enable_skill_tooling",
    "strip_directives_from_messages",
    "strip_frontmatter",
    "with_timeout",
]
