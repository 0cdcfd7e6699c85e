from __future__ import annotations

import time
from pathlib import Path

import pytest

import openchat_skills.loader as loader_mod
from openchat_skills.config import SkillsConfig
from openchat_skills.loader import create_empty_snapshot, load_skills_snapshot
from openchat_skills.security import BinaryLookup


def _write_skill(root: Path, dir_name: str, name: str, description: str = "Does things", extra: str = "") -> Path:
    skill_dir = root / dir_name
    skill_dir.mkdir(parents=True, exist_ok=True)
    header = f"name: {name}\ndescription: {description}\n{extra}"
    (skill_dir / "SKILL.md").write_text(f"---\n{header.rstrip()}\n---\n# {name}\nInstructions for {name}.\n", encoding="utf-8")
    return skill_dir


def _config(tmp_path: Path, **overrides) -> SkillsConfig:
    values = {
        "workspace_dirs": (tmp_path / "workspace",),
        "user_dir": tmp_path / "user",
        "bundled_dir": tmp_path / "bundled",
        "cwd": tmp_path,
    }
    values.update(overrides)
    return SkillsConfig(**values)


def _codes(snapshot) -> list[str]:
    return [err.code for err in snapshot.errors]


def test_empty_snapshot_shape() -> None:
    snapshot = create_empty_snapshot()
    assert snapshot.skills == []
    assert snapshot.errors == []
    assert set(snapshot.source_stats) == {"workspace", "user", "bundled"}
    assert all(s.discovered == s.loaded == s.skipped == 0 for s in snapshot.source_stats.values())
    assert snapshot.loaded_at <= time.time()


@pytest.mark.asyncio
async def test_disabled_returns_empty_snapshot(tmp_path: Path) -> None:
    _write_skill(tmp_path / "workspace", "alpha", "alpha")
    snapshot = await load_skills_snapshot(_config(tmp_path, enabled=False))
    assert snapshot.skills == []
    assert snapshot.errors == []
    assert all(s.discovered == 0 for s in snapshot.source_stats.values())


@pytest.mark.asyncio
async def test_missing_roots_are_empty(tmp_path: Path) -> None:
    snapshot = await load_skills_snapshot(_config(tmp_path))
    assert snapshot.skills == []
    assert snapshot.errors == []


@pytest.mark.asyncio
async def test_discovers_metadata_only(tmp_path: Path) -> None:
    skill_dir = _write_skill(tmp_path / "workspace", "resume", "Resume Polisher", "Tighten resumes")
    snapshot = await load_skills_snapshot(_config(tmp_path))
    assert len(snapshot.skills) == 1
    skill = snapshot.skills[0]
    assert skill.name == "Resume Polisher"
    assert skill.description == "Tighten resumes"
    assert skill.source == "workspace"
    assert skill.skill_dir == skill_dir
    assert skill.skill_file == skill_dir / "SKILL.md"
    assert "Instructions" not in str(skill.to_public_dict())
    stats = snapshot.source_stats["workspace"]
    assert (stats.discovered, stats.loaded, stats.skipped) == (1, 1, 0)


@pytest.mark.asyncio
async def test_source_precedence_and_duplicates(tmp_path: Path) -> None:
    _write_skill(tmp_path / "workspace", "shared", "shared-skill", "from workspace")
    _write_skill(tmp_path / "user", "shared", "Shared-Skill", "from user")
    _write_skill(tmp_path / "bundled", "shared", "SHARED-SKILL", "from bundled")
    _write_skill(tmp_path / "bundled", "extra", "bundled-only")

    snapshot = await load_skills_snapshot(_config(tmp_path))

    by_name = {s.name: s for s in snapshot.skills}
    assert set(by_name) == {"shared-skill", "bundled-only"}
    assert by_name["shared-skill"].source == "workspace"
    assert by_name["shared-skill"].description == "from workspace"
    dupes = [e for e in snapshot.errors if e.code == "skill_name_duplicate"]
    assert [e.source for e in dupes] == ["user", "bundled"]
    assert snapshot.source_stats["user"].skipped == 1
    assert snapshot.source_stats["bundled"].loaded == 1


@pytest.mark.asyncio
async def test_oversized_file_is_never_parsed(monkeypatch, tmp_path: Path) -> None:
    skill_dir = tmp_path / "workspace" / "huge"
    skill_dir.mkdir(parents=True)
    (skill_dir / "SKILL.md").write_text("not a skill document at all\n" * 50, encoding="utf-8")
    reads: list[str] = []
    real_read = loader_mod.read_text_file

    def tracking_read(path: str) -> str:
        reads.append(path)
        return real_read(path)

    monkeypatch.setattr(loader_mod, "read_text_file", tracking_read)
    snapshot = await load_skills_snapshot(_config(tmp_path, max_file_bytes=100))

    assert _codes(snapshot) == ["skill_file_too_large"]
    assert "skill_parse_invalid" not in _codes(snapshot)
    assert reads == []


@pytest.mark.asyncio
async def test_max_count_reported_once(tmp_path: Path) -> None:
    for name in ("a", "b", "c"):
        _write_skill(tmp_path / "workspace", name, f"skill-{name}")
    _write_skill(tmp_path / "bundled", "d", "skill-d")

    snapshot = await load_skills_snapshot(_config(tmp_path, max_count=1))

    assert [s.name for s in snapshot.skills] == ["skill-a"]
    assert _codes(snapshot).count("max_count_reached") == 1
    assert snapshot.source_stats["workspace"].skipped == 2
    assert snapshot.source_stats["bundled"].skipped == 1


@pytest.mark.asyncio
async def test_entries_are_scanned_in_name_order(tmp_path: Path) -> None:
    for name in ("zeta", "alpha", "mid"):
        _write_skill(tmp_path / "workspace", name, name)
    snapshot = await load_skills_snapshot(_config(tmp_path))
    assert [s.name for s in snapshot.skills] == ["alpha", "mid", "zeta"]


@pytest.mark.asyncio
async def test_plain_files_are_skipped_silently(tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    root.mkdir()
    (root / "README.md").write_text("hello", encoding="utf-8")
    snapshot = await load_skills_snapshot(_config(tmp_path))
    assert snapshot.errors == []
    assert snapshot.source_stats["workspace"].skipped == 1
    assert snapshot.source_stats["workspace"].discovered == 0


@pytest.mark.asyncio
async def test_missing_and_invalid_skill_files(tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    (root / "empty").mkdir(parents=True)
    broken = root / "broken"
    broken.mkdir()
    (broken / "SKILL.md").write_text("---\nname: broken\n---\nno description\n", encoding="utf-8")

    snapshot = await load_skills_snapshot(_config(tmp_path))

    by_code = {e.code: e for e in snapshot.errors}
    assert set(by_code) == {"skill_file_missing", "skill_parse_invalid"}
    assert by_code["skill_file_missing"].path == str(root / "empty" / "SKILL.md")
    assert "description" in by_code["skill_parse_invalid"].reason
    stats = snapshot.source_stats["workspace"]
    assert (stats.discovered, stats.loaded, stats.skipped) == (2, 0, 2)


@pytest.mark.asyncio
async def test_unreadable_root_is_reported(tmp_path: Path) -> None:
    (tmp_path / "not-a-dir").write_text("x", encoding="utf-8")
    snapshot = await load_skills_snapshot(
        _config(tmp_path, workspace_dirs=(tmp_path / "not-a-dir",), user_dir=None, bundled_dir=None)
    )
    assert _codes(snapshot) == ["directory_unreadable"]
    assert snapshot.errors[0].source == "workspace"


@pytest.mark.asyncio
async def test_symlinked_directory_is_rejected(tmp_path: Path) -> None:
    outside = _write_skill(tmp_path / "outside", "secret", "secret-skill")
    root = tmp_path / "workspace"
    root.mkdir()
    try:
        (root / "linked").symlink_to(outside, target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks unsupported on this platform")

    snapshot = await load_skills_snapshot(_config(tmp_path))

    assert snapshot.skills == []
    assert _codes(snapshot) == ["entry_symlink_ignored"]
    assert snapshot.source_stats["workspace"].skipped == 1


@pytest.mark.asyncio
async def test_escaping_entry_is_blocked(monkeypatch, tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    root.mkdir()
    _write_skill(tmp_path, "escapee", "escapee")
    monkeypatch.setattr(loader_mod, "_list_directory", lambda path: [("../escapee", True)])

    snapshot = await load_skills_snapshot(
        _config(tmp_path, workspace_dirs=(root,), user_dir=None, bundled_dir=None)
    )

    assert snapshot.skills == []
    assert _codes(snapshot) == ["path_escape_blocked"]


@pytest.mark.asyncio
async def test_slow_directory_listing_times_out(monkeypatch, tmp_path: Path) -> None:
    (tmp_path / "workspace").mkdir()

    def slow_list(path: str):
        time.sleep(0.3)
        return []

    monkeypatch.setattr(loader_mod, "_list_directory", slow_list)
    snapshot = await load_skills_snapshot(
        _config(tmp_path, user_dir=None, bundled_dir=None, load_timeout_ms=20)
    )
    assert _codes(snapshot) == ["load_timeout"]
    assert "Timed out while reading skills directory" in snapshot.errors[0].reason


@pytest.mark.asyncio
async def test_missing_env_gates_skill(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("OPENCHAT_TEST_SKILL_TOKEN", raising=False)
    extra = "metadata:\n  openchat:\n    requires:\n      env: [OPENCHAT_TEST_SKILL_TOKEN]\n"
    _write_skill(tmp_path / "workspace", "gated", "gated-skill", extra=extra)

    snapshot = await load_skills_snapshot(_config(tmp_path))

    assert snapshot.skills == []
    assert len(snapshot.errors) == 1
    error = snapshot.errors[0]
    assert error.code == "skill_gated"
    assert error.skill_name == "gated-skill"
    assert "OPENCHAT_TEST_SKILL_TOKEN" in error.reason

    monkeypatch.setenv("OPENCHAT_TEST_SKILL_TOKEN", "secret")
    snapshot = await load_skills_snapshot(_config(tmp_path))
    assert [s.name for s in snapshot.skills] == ["gated-skill"]


@pytest.mark.asyncio
async def test_gated_skill_does_not_shadow_lower_precedence(tmp_path: Path) -> None:
    extra = "metadata:\n  openchat:\n    requires:\n      bins: [definitely-not-installed]\n"
    _write_skill(tmp_path / "workspace", "tool", "tool-skill", "workspace copy", extra=extra)
    _write_skill(tmp_path / "bundled", "tool", "tool-skill", "bundled copy")

    lookup = BinaryLookup(which=lambda name: None)
    snapshot = await load_skills_snapshot(_config(tmp_path), binaries=lookup)

    assert [(s.name, s.source) for s in snapshot.skills] == [("tool-skill", "bundled")]
    assert _codes(snapshot) == ["skill_gated"]
    assert lookup.cached() == {"definitely-not-installed": False}


@pytest.mark.asyncio
async def test_long_description_is_truncated(tmp_path: Path) -> None:
    _write_skill(tmp_path / "workspace", "wordy", "wordy", "x" * 2000)
    snapshot = await load_skills_snapshot(_config(tmp_path))
    assert len(snapshot.skills[0].description) == 1024


@pytest.mark.asyncio
async def test_deeply_nested_frontmatter_is_reported(tmp_path: Path) -> None:
    _write_skill(tmp_path / "workspace", "deep", "deep", extra="extra: " + "[" * 5000 + "]" * 5000 + "\n")
    _write_skill(tmp_path / "workspace", "fine", "fine")

    snapshot = await load_skills_snapshot(_config(tmp_path))

    assert [s.name for s in snapshot.skills] == ["fine"]
    assert _codes(snapshot) == ["skill_parse_invalid"]
    assert snapshot.errors[0].path == str(tmp_path / "workspace" / "deep" / "SKILL.md")
