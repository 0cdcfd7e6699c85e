from __future__ import annotations

import argparse
import sys

from .cli import register_skills_cli
from .logging import setup_logging


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="openchat-skills")
    parser.add_argument("--cwd", default=None, help="base directory for relative skill roots")
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--json-logs", action="store_true")
    sub = parser.add_subparsers(dest="command")
    register_skills_cli(sub)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)
    setup_logging(args.log_level, json_format=bool(args.json_logs))
    args.func(args)


if __name__ == "__main__":
    main()
