from __future__ import annotations

import os
import time
from pathlib import Path

from .config import SkillsConfig, SkillSourceRoot, resolve_skill_source_roots
from .logging import get_logger
from .parser import SkillParseError, parse_skill_document
from .security import (
    BinaryLookup,
    LoadTimeoutError,
    is_path_within_root,
    is_skill_eligible,
    is_symlink_path,
    run_io,
)
from .types import (
    MAX_DESCRIPTION_CHARS,
    SKILL_FILE_NAME,
    SkillLoadError,
    SkillLoadErrorCode,
    SkillMetadata,
    SkillSource,
    SkillsSnapshot,
    create_source_stats,
)

logger = get_logger(__name__)


def _list_directory(path: str) -> list[tuple[str, bool]]:
    """Return ``(name, is_dir)`` pairs sorted by name. ``is_dir`` follows symlinks."""
    with os.scandir(path) as it:
        entries = [(entry.name, entry.is_dir()) for entry in it]
    entries.sort(key=lambda item: item[0])
    return entries


def stat_file_size(path: str) -> int:
    return int(os.stat(path).st_size)


def read_text_file(path: str) -> str:
    with open(path, "r", encoding="utf-8") as fh:
        return fh.read()


def normalize_description(description: str) -> str:
    if len(description) > MAX_DESCRIPTION_CHARS:
        return description[:MAX_DESCRIPTION_CHARS]
    return description


def create_empty_snapshot() -> SkillsSnapshot:
    return SkillsSnapshot(skills=[], loaded_at=time.time(), source_stats=create_source_stats(), errors=[])


class _SnapshotBuilder:
    """Accumulates accepted skills, errors and counters for one scan."""

    def __init__(self, max_count: int):
        self.max_count = int(max_count)
        self.skills: list[SkillMetadata] = []
        self.errors: list[SkillLoadError] = []
        self.stats = create_source_stats()
        self._seen: set[str] = set()
        self._max_count_reported = False

    @property
    def full(self) -> bool:
        return len(self.skills) >= self.max_count

    def error(
        self,
        source: SkillSource,
        code: SkillLoadErrorCode,
        reason: str,
        path: str | Path | None = None,
        skill_name: str | None = None,
    ) -> None:
        self.errors.append(
            SkillLoadError(
                code=code,
                source=source,
                reason=reason,
                path=str(path) if path is not None else None,
                skill_name=skill_name,
            )
        )

    def skip(
        self,
        source: SkillSource,
        code: SkillLoadErrorCode,
        reason: str,
        path: str | Path | None = None,
        skill_name: str | None = None,
    ) -> None:
        self.stats[source].skipped += 1
        self.error(source, code, reason, path, skill_name)

    def skip_over_limit(self, source: SkillSource) -> None:
        self.stats[source].skipped += 1
        if not self._max_count_reported:
            self._max_count_reported = True
            self.error(source, "max_count_reached", f"Maximum skill count reached ({self.max_count})")

    def is_duplicate(self, name: str) -> bool:
        return name.lower() in self._seen

    def accept(self, skill: SkillMetadata) -> None:
        self._seen.add(skill.name.lower())
        self.stats[skill.source].loaded += 1
        self.skills.append(skill)

    def finish(self) -> SkillsSnapshot:
        return SkillsSnapshot(skills=self.skills, loaded_at=time.time(), source_stats=self.stats, errors=self.errors)


async def _scan_entry(
    builder: _SnapshotBuilder,
    root: SkillSourceRoot,
    name: str,
    config: SkillsConfig,
    binaries: BinaryLookup,
) -> None:
    source = root.source
    timeout_s = config.load_timeout_s
    skill_dir = root.path / name
    skill_file = skill_dir / SKILL_FILE_NAME
    builder.stats[source].discovered += 1

    if not is_path_within_root(root.path, skill_file):
        builder.skip(source, "path_escape_blocked", "Skill path escapes configured source root", skill_file)
        return

    try:
        if await is_symlink_path(skill_dir, timeout_s):
            builder.skip(
                source,
                "entry_symlink_ignored",
                "Symbolic link skill directories are ignored for safety",
                skill_dir,
            )
            return
    except LoadTimeoutError as exc:
        builder.skip(source, "load_timeout", str(exc), skill_dir)
        return
    except OSError as exc:
        builder.skip(source, "skill_file_unreadable", f"Unable to inspect skill directory: {exc}", skill_dir)
        return

    try:
        size = await run_io(
            stat_file_size,
            str(skill_file),
            timeout_s=timeout_s,
            message=f"Timed out while reading skill file stats: {skill_file}",
        )
    except LoadTimeoutError as exc:
        builder.skip(source, "load_timeout", str(exc), skill_file)
        return
    except OSError as exc:
        builder.skip(source, "skill_file_missing", f"Skill file missing: {exc}", skill_file)
        return

    if size > config.max_file_bytes:
        builder.skip(
            source,
            "skill_file_too_large",
            f"Skill file exceeds maximum size ({config.max_file_bytes} bytes)",
            skill_file,
        )
        return

    try:
        content = await run_io(
            read_text_file,
            str(skill_file),
            timeout_s=timeout_s,
            message=f"Timed out while reading skill file: {skill_file}",
        )
    except LoadTimeoutError as exc:
        builder.skip(source, "load_timeout", str(exc), skill_file)
        return
    except (OSError, UnicodeDecodeError) as exc:
        builder.skip(source, "skill_file_unreadable", f"Unable to read skill file: {exc}", skill_file)
        return

    try:
        parsed = parse_skill_document(content)
    except SkillParseError as exc:
        builder.skip(source, "skill_parse_invalid", str(exc), skill_file)
        return

    skill_name = parsed.frontmatter.name
    try:
        eligibility = await is_skill_eligible(parsed.frontmatter.metadata, config, binaries=binaries)
    except Exception as exc:
        logger.warning("Eligibility check failed for %s: %s", skill_file, exc)
        builder.skip(source, "skill_gated", f"eligibility check failed ({exc})", skill_file, skill_name)
        return
    if not eligibility.eligible:
        builder.skip(
            source,
            "skill_gated",
            eligibility.reason or "Skill filtered by metadata requirements",
            skill_file,
            skill_name,
        )
        return

    if builder.is_duplicate(skill_name):
        builder.skip(
            source,
            "skill_name_duplicate",
            "Skill name conflict with higher-precedence source",
            skill_file,
            skill_name,
        )
        return

    builder.accept(
        SkillMetadata(
            name=skill_name,
            description=normalize_description(parsed.frontmatter.description),
            source=source,
            skill_dir=skill_dir,
            skill_file=skill_file,
            metadata=parsed.frontmatter.metadata,
        )
    )


async def load_skills_snapshot(config: SkillsConfig, *, binaries: BinaryLookup | None = None) -> SkillsSnapshot:
    """Scan every source root in precedence order.

    Never raises: each failure becomes a :class:`SkillLoadError` and a
    ``skipped`` increment. Roots and entries are processed sequentially so
    first-seen (highest precedence) wins on name collisions.
    """
    if not config.enabled:
        return create_empty_snapshot()

    lookup = binaries if binaries is not None else BinaryLookup()
    builder = _SnapshotBuilder(config.max_count)

    for root in resolve_skill_source_roots(config):
        try:
            entries = await run_io(
                _list_directory,
                str(root.path),
                timeout_s=config.load_timeout_s,
                message=f"Timed out while reading skills directory: {root.path}",
            )
        except FileNotFoundError:
            logger.debug("Skill root %s does not exist, treating as empty", root.path)
            continue
        except LoadTimeoutError as exc:
            builder.error(root.source, "load_timeout", str(exc), root.path)
            continue
        except OSError as exc:
            builder.error(root.source, "directory_unreadable", f"Unable to read skills directory: {exc}", root.path)
            continue

        for name, is_dir in entries:
            if builder.full:
                builder.skip_over_limit(root.source)
                continue
            if not is_dir:
                builder.stats[root.source].skipped += 1
                continue
            await _scan_entry(builder, root, name, config, lookup)

    snapshot = builder.finish()
    logger.debug(
        "Skills snapshot: %d loaded, %d errors",
        len(snapshot.skills),
        len(snapshot.errors),
    )
    return snapshot
