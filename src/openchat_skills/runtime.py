"""LLM-facing surface: tooling switch, system prompt fragment and lazy body loading.

Discovery only ever exposes name and description. The instructional body is
read from disk again on each explicit ``loadSkill`` call (progressive
disclosure), so edits after discovery are picked up and nothing is cached.
"""

from __future__ import annotations

import time
from typing import Any

from .config import SkillsConfig
from .loader import read_text_file, stat_file_size
from .parser import SkillParseError, parse_skill_document
from .security import LoadTimeoutError, run_io
from .telemetry import SkillsTelemetry
from .types import LoadContext, LoadedSkill, SkillLoadError, SkillLoadErrorCode, SkillMetadata

LOAD_SKILL_TOOL_NAME = "loadSkill"


def should_enable_skill_tooling(enabled: bool, discovered_skill_count: int, is_reasoning_model: bool) -> bool:
    # Reasoning models never get skill tooling; this is product policy.
    return bool(enabled) and int(discovered_skill_count) > 0 and not is_reasoning_model


def build_skills_system_prompt(skills: list[SkillMetadata]) -> str:
    if not skills:
        return ""

    skill_list = "\n".join(
        f"- {skill.name}: {skill.description} (source: {skill.source}, path: {skill.skill_dir})" for skill in skills
    )
    return "\n".join(
        [
            "Skills System:",
            "Use these skills only when relevant.",
            "Workflow:",
            "1) Match user intent against skill descriptions.",
            f"2) Call `{LOAD_SKILL_TOOL_NAME}` with the exact skill name (camelCase only).",
            "3) Do NOT call `load_skill`, `load-skill`, or any other tool-name variant.",
            "4) Follow loaded instructions and referenced assets.",
            "Available skills:",
            skill_list,
        ]
    )


def list_skill_commands(skills: list[SkillMetadata]) -> list[dict[str, Any]]:
    """Slash-command entries for a client menu."""
    return [
        {
            "id": skill.name,
            "title": skill.name,
            "description": skill.description,
            "type": "skill",
        }
        for skill in skills
    ]


def find_skill(skills: list[SkillMetadata], name: str | None) -> SkillMetadata | None:
    normalized = str(name or "").strip().lower()
    for skill in skills:
        if skill.name.lower() == normalized:
            return skill
    return None


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


async def load_skill_by_name(
    skills: list[SkillMetadata],
    name: str | None,
    config: SkillsConfig,
    *,
    context: LoadContext | None = None,
    telemetry: SkillsTelemetry | None = None,
) -> LoadedSkill | None:
    """Return the skill body with front matter stripped, or ``None``.

    A miss or any load failure is reported through telemetry and returns
    ``None``; nothing is raised to the tool layer.
    """
    telemetry = telemetry or SkillsTelemetry()
    started = time.perf_counter()
    name = str(name or "")

    skill = find_skill(skills, name)
    if skill is None:
        telemetry.record_load_invocation(name, False, _elapsed_ms(started), None, context)
        return None

    skill_file = str(skill.skill_file)
    timeout_s = config.load_timeout_s

    def fail(code: SkillLoadErrorCode, reason: str) -> None:
        error = SkillLoadError(code=code, source=skill.source, reason=reason, path=skill_file, skill_name=skill.name)
        telemetry.record_load_invocation(skill.name, False, _elapsed_ms(started), error, context)

    try:
        size = await run_io(
            stat_file_size,
            skill_file,
            timeout_s=timeout_s,
            message=f"Timed out while reading skill file stats: {skill_file}",
        )
        if size > config.max_file_bytes:
            fail("skill_file_too_large", f"Skill file exceeds max size ({config.max_file_bytes} bytes)")
            return None

        content = await run_io(
            read_text_file,
            skill_file,
            timeout_s=timeout_s,
            message=f"Timed out while reading skill file: {skill_file}",
        )
        parsed = parse_skill_document(content)
    except LoadTimeoutError as exc:
        fail("load_timeout", str(exc))
        return None
    except SkillParseError as exc:
        fail("skill_parse_invalid", str(exc))
        return None
    except (OSError, UnicodeDecodeError) as exc:
        fail("runtime_read_failed", str(exc))
        return None

    telemetry.record_load_invocation(skill.name, True, _elapsed_ms(started), None, context)
    return LoadedSkill(name=skill.name, skill_directory=skill.skill_dir, content=parsed.body)


def build_explicit_skills_prompt(loaded_skills: list[LoadedSkill]) -> str:
    """System prompt appendix for skills the user selected with ``[Use Skill: X]``."""
    if not loaded_skills:
        return ""
    blocks = "\n\n".join(f"### Skill: {skill.name}\n{skill.content}" for skill in loaded_skills)
    return "\n\n".join(
        [
            "Explicit Skills Context:",
            "The user explicitly selected these skills for this request.",
            blocks,
        ]
    )


def load_skill_tool_definitions() -> list[dict[str, Any]]:
    """Tool schemas for the canonical tool and its snake_case compatibility alias."""
    input_schema = {
        "type": "object",
        "properties": {"name": {"type": "string", "description": "Skill name to load"}},
        "required": ["name"],
    }
    return [
        {
            "name": LOAD_SKILL_TOOL_NAME,
            "description": "Load a skill by name and return its full instructions",
            "input_schema": dict(input_schema),
        },
        {
            "name": "load_skill",
            "description": "Compatibility alias for loading a skill by name and returning full instructions",
            "input_schema": dict(input_schema),
        },
    ]
