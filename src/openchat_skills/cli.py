from __future__ import annotations

import argparse
import asyncio
import json
import sys

from .config import SkillsConfig, resolve_skills_config
from .directives import extract_skill_directives
from .runtime import build_skills_system_prompt, list_skill_commands
from .service import SkillsService
from .types import SkillsSnapshot


def _print_json(payload: object) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=str))


def _config_from_args(args: argparse.Namespace) -> SkillsConfig:
    return resolve_skills_config(getattr(args, "cwd", None))


def _snapshot(service: SkillsService, config: SkillsConfig) -> SkillsSnapshot:
    return asyncio.run(service.get_snapshot(config))


def cmd_skills_list(args: argparse.Namespace) -> None:
    snapshot = _snapshot(SkillsService(), _config_from_args(args))
    payload = snapshot.to_public_dict()
    payload["ok"] = not snapshot.errors
    payload["object"] = "list"
    _print_json(payload)


def cmd_skills_show(args: argparse.Namespace) -> None:
    service = SkillsService()
    config = _config_from_args(args)
    name = str(getattr(args, "name") or "").strip()

    async def _run():
        snapshot = await service.get_snapshot(config)
        return await service.load_skill(snapshot.skills, name, config)

    loaded = asyncio.run(_run())
    if loaded is None:
        _print_json({"ok": False, "error": "skill_not_found", "name": name})
        sys.exit(1)
    _print_json(
        {
            "ok": True,
            "skill": {"name": loaded.name, "skill_directory": str(loaded.skill_directory), "content": loaded.content},
        }
    )


def cmd_skills_validate(args: argparse.Namespace) -> None:
    snapshot = _snapshot(SkillsService(), _config_from_args(args))
    payload = {
        "ok": not snapshot.errors,
        "loaded": len(snapshot.skills),
        "errors": [e.to_public_dict() for e in snapshot.errors] or None,
        "source_stats": {k: v.to_public_dict() for k, v in snapshot.source_stats.items()},
    }
    _print_json(payload)
    if snapshot.errors:
        sys.exit(1)


def cmd_skills_prompt(args: argparse.Namespace) -> None:
    snapshot = _snapshot(SkillsService(), _config_from_args(args))
    print(build_skills_system_prompt(snapshot.skills))


def cmd_skills_commands(args: argparse.Namespace) -> None:
    snapshot = _snapshot(SkillsService(), _config_from_args(args))
    _print_json({"commands": list_skill_commands(snapshot.skills)})


def cmd_skills_directives(args: argparse.Namespace) -> None:
    result = extract_skill_directives(str(getattr(args, "text") or ""))
    _print_json({"requested_names": result.requested_names, "stripped_text": result.stripped_text})


def register_skills_cli(subparsers: argparse._SubParsersAction) -> None:
    ls = subparsers.add_parser("list")
    ls.set_defaults(func=cmd_skills_list)

    show = subparsers.add_parser("show")
    show.add_argument("name")
    show.set_defaults(func=cmd_skills_show)

    val = subparsers.add_parser("validate")
    val.set_defaults(func=cmd_skills_validate)

    prompt = subparsers.add_parser("prompt")
    prompt.set_defaults(func=cmd_skills_prompt)

    commands = subparsers.add_parser("commands")
    commands.set_defaults(func=cmd_skills_commands)

    directives = subparsers.add_parser("directives")
    directives.add_argument("text")
    directives.set_defaults(func=cmd_skills_directives)
