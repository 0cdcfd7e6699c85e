"""SKILL.md parsing.

A skill document is a ``---`` delimited YAML header followed by free-form
Markdown. Only ``name`` and ``description`` are required; ``metadata`` is an
optional mapping carried through untouched for the eligibility gate.
"""

from __future__ import annotations

import re
from typing import Any

import yaml

from .types import ParsedSkillDocument, SkillFrontmatter

_FRONTMATTER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n---(?:\r?\n|\Z)", re.DOTALL)


class SkillParseError(ValueError):
    pass


def _ensure_string_field(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise SkillParseError(f"Missing required frontmatter field: {key}")
    return value.strip()


def _ensure_metadata_field(data: dict[str, Any]) -> dict[str, Any]:
    metadata = data.get("metadata")
    if metadata is None:
        return {}
    if isinstance(metadata, dict):
        return metadata
    raise SkillParseError("Frontmatter field `metadata` must be a mapping")


def strip_frontmatter(content: str) -> str:
    match = _FRONTMATTER_RE.match(content)
    body = content[match.end() :] if match else content
    return body.strip()


def parse_skill_document(content: str) -> ParsedSkillDocument:
    match = _FRONTMATTER_RE.match(content)
    if match is None or not match.group(1):
        raise SkillParseError("No frontmatter found in SKILL.md")

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        raise SkillParseError(f"Invalid YAML frontmatter in SKILL.md: {exc}") from exc
    except RecursionError as exc:
        raise SkillParseError("YAML frontmatter in SKILL.md is nested too deeply") from exc
    if not isinstance(data, dict):
        raise SkillParseError("Invalid YAML frontmatter in SKILL.md")

    frontmatter = SkillFrontmatter(
        name=_ensure_string_field(data, "name"),
        description=_ensure_string_field(data, "description"),
        metadata=_ensure_metadata_field(data),
    )
    return ParsedSkillDocument(frontmatter=frontmatter, body=content[match.end() :].strip())


def parse_skill_frontmatter(content: str) -> SkillFrontmatter:
    return parse_skill_document(content).frontmatter
