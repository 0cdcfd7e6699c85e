from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from openchat_skills.config import SkillsConfig
from openchat_skills.security import (
    BinaryLookup,
    LoadTimeoutError,
    get_nested_value,
    is_path_within_root,
    is_skill_eligible,
    is_symlink_path,
    with_timeout,
)


class _CountingWhich:
    def __init__(self, available: set[str]):
        self.available = available
        self.calls: list[str] = []

    def __call__(self, name: str) -> str | None:
        self.calls.append(name)
        return f"/usr/bin/{name}" if name in self.available else None


def _config(tmp_path: Path, runtime_config: dict | None = None) -> SkillsConfig:
    return SkillsConfig(cwd=tmp_path, runtime_config=runtime_config or {})


def _requires(**requires) -> dict:
    return {"openchat": {"requires": requires}}


def test_path_within_root(tmp_path: Path) -> None:
    root = tmp_path / "skills"
    assert is_path_within_root(root, root)
    assert is_path_within_root(root, root / "a" / "SKILL.md")
    assert is_path_within_root(root, root / "a" / ".." / "b")
    assert not is_path_within_root(root, root / ".." / "other" / "SKILL.md")
    assert not is_path_within_root(root, tmp_path / "skills-evil" / "SKILL.md")
    assert not is_path_within_root(root, tmp_path)
    # names that only start with dots stay inside
    assert is_path_within_root(root, root / "..hidden")


@pytest.mark.asyncio
async def test_with_timeout_raises_load_timeout() -> None:
    with pytest.raises(LoadTimeoutError) as exc:
        await with_timeout(asyncio.sleep(1.0), 0.01, "Timed out while reading skills directory: x")
    assert "Timed out while reading skills directory" in str(exc.value)
    assert isinstance(exc.value, TimeoutError)


@pytest.mark.asyncio
async def test_with_timeout_passes_result_through() -> None:
    async def _value() -> int:
        return 42

    assert await with_timeout(_value(), 1.0, "unused") == 42
    assert await with_timeout(_value(), 0, "unused") == 42


@pytest.mark.asyncio
async def test_is_symlink_path(tmp_path: Path) -> None:
    real = tmp_path / "real"
    real.mkdir()
    link = tmp_path / "link"
    try:
        link.symlink_to(real, target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks unsupported on this platform")
    assert await is_symlink_path(link, 1.0) is True
    assert await is_symlink_path(real, 1.0) is False
    with pytest.raises(FileNotFoundError):
        await is_symlink_path(tmp_path / "missing", 1.0)


@pytest.mark.asyncio
async def test_binary_lookup_caches_results() -> None:
    which = _CountingWhich({"git"})
    lookup = BinaryLookup(which=which)
    assert await lookup.exists("git") is True
    assert await lookup.exists("git") is True
    assert await lookup.exists("nope") is False
    assert which.calls == ["git", "nope"]
    assert lookup.cached() == {"git": True, "nope": False}

    lookup.reset()
    assert lookup.cached() == {}
    await lookup.exists("git")
    assert which.calls == ["git", "nope", "git"]


def test_get_nested_value() -> None:
    root = {"flow": {"mode": "fast", "depth": {"max": 3}}}
    assert get_nested_value(root, "flow.mode") == "fast"
    assert get_nested_value(root, "flow.depth.max") == 3
    assert get_nested_value(root, "flow.mode.extra") is None
    assert get_nested_value(root, "missing.path") is None


@pytest.mark.asyncio
async def test_no_requirements_is_eligible(tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    for metadata in ({}, {"other": {}}, {"openchat": "yes"}, {"openchat": {"requires": "bad"}}):
        result = await is_skill_eligible(metadata, cfg, binaries=BinaryLookup(which=_CountingWhich(set())))
        assert result.eligible, metadata


@pytest.mark.asyncio
async def test_os_requirement(tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    metadata = _requires(os=["linux", "darwin"])
    assert (await is_skill_eligible(metadata, cfg, platform="linux")).eligible
    result = await is_skill_eligible(metadata, cfg, platform="win32")
    assert not result.eligible
    assert result.reason == "os requirement not met (win32)"


@pytest.mark.asyncio
async def test_env_requirement_names_the_variable(tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    metadata = _requires(env=["OPENCHAT_PRESENT", "OPENCHAT_ABSENT"])
    result = await is_skill_eligible(metadata, cfg, environ={"OPENCHAT_PRESENT": "1"})
    assert not result.eligible
    assert result.reason == "env requirement not met (OPENCHAT_ABSENT)"
    empty = await is_skill_eligible(metadata, cfg, environ={"OPENCHAT_PRESENT": "1", "OPENCHAT_ABSENT": ""})
    assert not empty.eligible
    ok = await is_skill_eligible(metadata, cfg, environ={"OPENCHAT_PRESENT": "1", "OPENCHAT_ABSENT": "x"})
    assert ok.eligible


@pytest.mark.asyncio
async def test_bins_requirement(tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    lookup = BinaryLookup(which=_CountingWhich({"git"}))
    assert (await is_skill_eligible(_requires(bins=["git"]), cfg, binaries=lookup)).eligible
    result = await is_skill_eligible(_requires(bins=["git", "ffmpeg"]), cfg, binaries=lookup)
    assert not result.eligible
    assert result.reason == "binary requirement not met (ffmpeg)"


@pytest.mark.asyncio
async def test_config_requirement(tmp_path: Path) -> None:
    metadata = _requires(config=["flow.mode"])
    assert (await is_skill_eligible(metadata, _config(tmp_path, {"flow": {"mode": "fast"}}))).eligible
    for runtime in ({}, {"flow": {"mode": ""}}, {"flow": {"mode": False}}, {"flow": "fast"}):
        result = await is_skill_eligible(metadata, _config(tmp_path, runtime))
        assert not result.eligible
        assert result.reason == "config requirement not met (flow.mode)"


@pytest.mark.asyncio
async def test_checks_run_in_order(tmp_path: Path) -> None:
    metadata = _requires(os=["linux"], env=["OPENCHAT_ABSENT"], bins=["missing-bin"])
    result = await is_skill_eligible(
        metadata,
        _config(tmp_path),
        binaries=BinaryLookup(which=_CountingWhich(set())),
        environ={},
        platform="darwin",
    )
    assert result.reason == "os requirement not met (darwin)"


@pytest.mark.asyncio
async def test_always_overrides_requirements(tmp_path: Path) -> None:
    metadata = {"openchat": {"always": True, "requires": {"env": ["OPENCHAT_ABSENT"], "os": ["nowhere"]}}}
    result = await is_skill_eligible(metadata, _config(tmp_path), environ={}, platform="linux")
    assert result.eligible
    # only the literal boolean counts
    not_bool = {"openchat": {"always": "true", "requires": {"env": ["OPENCHAT_ABSENT"]}}}
    assert not (await is_skill_eligible(not_bool, _config(tmp_path), environ={})).eligible
