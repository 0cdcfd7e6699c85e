"""``[Use Skill: <name>]`` markers in user-authored chat text."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

_DIRECTIVE_RE = re.compile(r"\[Use Skill:\s*([^\]]+)\]", re.IGNORECASE)
_LEADING_BLANK_RE = re.compile(r"\A\s*\n+")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class SkillDirectives:
    requested_names: list[str] = field(default_factory=list)
    stripped_text: str = ""


class _NameCollector:
    """Case-insensitive dedup that keeps first-seen casing and order."""

    def __init__(self) -> None:
        self.names: list[str] = []
        self._seen: set[str] = set()

    def add(self, value: str) -> None:
        trimmed = value.strip()
        if not trimmed:
            return
        key = trimmed.lower()
        if key in self._seen:
            return
        self._seen.add(key)
        self.names.append(trimmed)

    def extend(self, values: list[str]) -> None:
        for value in values:
            self.add(value)


def extract_skill_directives(text: str) -> SkillDirectives:
    collector = _NameCollector()
    for match in _DIRECTIVE_RE.finditer(text):
        collector.add(match.group(1))

    stripped = _DIRECTIVE_RE.sub("", text)
    stripped = _LEADING_BLANK_RE.sub("", stripped, count=1)
    stripped = _EXCESS_NEWLINES_RE.sub("\n\n", stripped)
    return SkillDirectives(requested_names=collector.names, stripped_text=stripped)


def collect_directive_names_from_parts(parts: Any) -> list[str]:
    """Only ``{"type": "text", "text": str}`` parts are considered."""
    if not isinstance(parts, list):
        return []
    collector = _NameCollector()
    for part in parts:
        if not isinstance(part, Mapping):
            continue
        if part.get("type") != "text" or not isinstance(part.get("text"), str):
            continue
        collector.extend(extract_skill_directives(part["text"]).requested_names)
    return collector.names


def _message_parts(message: Any) -> Any:
    if not isinstance(message, Mapping):
        return None
    return message.get("parts")


def _latest_user_message(messages: Any) -> Any:
    if not isinstance(messages, list):
        return None
    for candidate in reversed(messages):
        if isinstance(candidate, Mapping) and candidate.get("role") == "user":
            return candidate
    return None


def collect_directive_names_from_request_body(body: Mapping[str, Any]) -> list[str]:
    """Names from ``body["message"]`` merged with the latest user entry of ``body["messages"]``."""
    collector = _NameCollector()
    if not isinstance(body, Mapping):
        return collector.names
    collector.extend(collect_directive_names_from_parts(_message_parts(body.get("message"))))
    collector.extend(collect_directive_names_from_parts(_message_parts(_latest_user_message(body.get("messages")))))
    return collector.names


def strip_directives_from_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Remove markers from user text parts before the model sees them.

    Returns the input list itself when nothing changed.
    """
    changed_any = False
    result: list[dict[str, Any]] = []
    for message in messages:
        if not isinstance(message, Mapping) or message.get("role") != "user" or not isinstance(message.get("parts"), list):
            result.append(message)
            continue
        changed = False
        parts: list[Any] = []
        for part in message["parts"]:
            if isinstance(part, Mapping) and part.get("type") == "text" and isinstance(part.get("text"), str):
                stripped = extract_skill_directives(part["text"]).stripped_text
                if stripped != part["text"]:
                    changed = True
                    part = {**part, "text": stripped}
            parts.append(part)
        if changed:
            changed_any = True
            result.append({**message, "parts": parts})
        else:
            result.append(message)
    return result if changed_any else messages
