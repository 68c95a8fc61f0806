"""Thin CLI router: dispatches to commands."""
from __future__ import annotations

import logging
import os
import sys

USAGE = """\
testmo: manual test case management with guided runs

Usage:
  testmo init                              Create .testmo/ in the current directory
  testmo login <user> <password>           Log in (activity is recorded under your name)
  testmo logout | whoami | theme
  testmo users [add <user> <name> [role] | rm <user>]
  testmo settings [key=value ...]          Project context used by the AI assistant

  testmo list [--status S] [--tag T]       List cases
  testmo show <case-id> [--json]
  testmo duplicate|reset|activate|draft|delete <case-id> ...
  testmo assign <user|-> <case-id> ...
  testmo step <case-id> <step-id> <status> [note]
  testmo promote <case-id> <flow-id>       Negative flow -> standalone case
  testmo stats | activity [n]

  testmo run <case-id>                     Interactive guided run
  testmo run start <case-id>               Start a run, then drive it with:
  testmo run status|pass|next|prev|cancel|stop
  testmo run fail|block [note]             Without a note the failure dialog opens
  testmo run confirm <note> [--evidence FILE]
  testmo run evidence <image-file>|--remove

  testmo export standard|external [--out DIR] [case-id ...]
  testmo import <file.csv>                 AI-assisted CSV import
  testmo generate <context> [--priority P] [--role R] [--attach FILE]
  testmo refine <case-id> | variants <case-id>
  testmo analyze <case-id> <step-id>       Check step evidence against the expectation
  testmo defect <case-id> <step-id> [--json]

Internal:
  testmo mcp-server                        Start MCP Server (stdio)
"""


def _pop_option(args: list[str], name: str) -> str | None:
    if name not in args:
        return None
    i = args.index(name)
    if i + 1 >= len(args):
        print(f"Option {name} needs a value", file=sys.stderr)
        sys.exit(1)
    value = args[i + 1]
    del args[i:i + 2]
    return value


def _pop_flag(args: list[str], name: str) -> bool:
    if name in args:
        args.remove(name)
        return True
    return False


def _need(args: list[str], count: int, usage: str) -> None:
    if len(args) < count:
        print(f"Usage: {usage}", file=sys.stderr)
        sys.exit(1)


def _configure_logging(cwd: str) -> None:
    from pathlib import Path

    from testmo.config import load_config

    try:
        level = load_config(Path(cwd)).log_level
    except (OSError, ValueError):
        level = os.getenv("TESTMO_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(level=getattr(logging, level, logging.WARNING),
                        format="%(levelname)s %(name)s: %(message)s")


def main():
    args = sys.argv[1:]
    cwd = os.getcwd()
    command = args[0] if args else None
    rest = args[1:]
    _configure_logging(cwd)

    if command == "init":
        from testmo.commands.init import cmd_init
        cmd_init(cwd)

    elif command == "login":
        _need(rest, 2, "testmo login <user> <password>")
        from testmo.commands.auth import cmd_login
        cmd_login(cwd, rest[0], rest[1])

    elif command == "logout":
        from testmo.commands.auth import cmd_logout
        cmd_logout(cwd)

    elif command == "whoami":
        from testmo.commands.auth import cmd_whoami
        cmd_whoami(cwd)

    elif command == "theme":
        from testmo.commands.auth import cmd_theme
        cmd_theme(cwd)

    elif command == "users":
        from testmo.commands.auth import cmd_users
        cmd_users(cwd, rest)

    elif command == "settings":
        from testmo.commands.auth import cmd_settings
        cmd_settings(cwd, rest)

    elif command == "list":
        status = _pop_option(rest, "--status")
        tag = _pop_option(rest, "--tag")
        from testmo.commands.cases import cmd_list
        cmd_list(cwd, status=status, tag=tag)

    elif command == "show":
        as_json = _pop_flag(rest, "--json")
        _need(rest, 1, "testmo show <case-id> [--json]")
        from testmo.commands.cases import cmd_show
        cmd_show(cwd, rest[0], as_json=as_json)

    elif command in ("duplicate", "reset", "activate", "draft", "delete"):
        _need(rest, 1, f"testmo {command} <case-id> ...")
        from testmo.commands.cases import cmd_lifecycle
        cmd_lifecycle(cwd, command, rest)

    elif command == "assign":
        _need(rest, 2, "testmo assign <user|-> <case-id> ...")
        from testmo.commands.cases import cmd_assign
        cmd_assign(cwd, rest[0], rest[1:])

    elif command == "step":
        _need(rest, 3, "testmo step <case-id> <step-id> <status> [note]")
        from testmo.commands.cases import cmd_step
        cmd_step(cwd, rest[0], rest[1], rest[2], " ".join(rest[3:]) or None)

    elif command == "promote":
        _need(rest, 2, "testmo promote <case-id> <flow-id>")
        from testmo.commands.cases import cmd_promote
        cmd_promote(cwd, rest[0], rest[1])

    elif command == "stats":
        from testmo.commands.cases import cmd_stats
        cmd_stats(cwd)

    elif command == "activity":
        from testmo.commands.cases import cmd_activity
        cmd_activity(cwd, int(rest[0]) if rest and rest[0].isdigit() else 20)

    elif command == "run":
        _need(rest, 1, "testmo run <case-id> | testmo run <action>")
        from testmo.commands.run import RUN_ACTIONS, cmd_run_action, cmd_run_interactive
        if rest[0] in RUN_ACTIONS:
            cmd_run_action(cwd, rest[0], rest[1:])
        else:
            cmd_run_interactive(cwd, rest[0])

    elif command == "export":
        out = _pop_option(rest, "--out")
        _need(rest, 1, "testmo export standard|external [--out DIR] [case-id ...]")
        from testmo.commands.export import cmd_export
        cmd_export(cwd, rest[0], rest[1:], out=out)

    elif command == "import":
        _need(rest, 1, "testmo import <file.csv>")
        from testmo.commands.assist import cmd_import
        cmd_import(cwd, rest[0])

    elif command == "generate":
        priority = _pop_option(rest, "--priority") or "Medium"
        role = _pop_option(rest, "--role") or "Case Manager"
        attach = _pop_option(rest, "--attach")
        from testmo.commands.assist import cmd_generate
        cmd_generate(cwd, " ".join(rest), priority=priority, role=role, attach=attach)

    elif command in ("refine", "variants"):
        _need(rest, 1, f"testmo {command} <case-id>")
        from testmo.commands.assist import cmd_refine, cmd_variants
        (cmd_refine if command == "refine" else cmd_variants)(cwd, rest[0])

    elif command == "analyze":
        _need(rest, 2, "testmo analyze <case-id> <step-id>")
        from testmo.commands.assist import cmd_analyze
        cmd_analyze(cwd, rest[0], rest[1])

    elif command == "defect":
        as_json = _pop_flag(rest, "--json")
        _need(rest, 2, "testmo defect <case-id> <step-id> [--json]")
        from testmo.commands.assist import cmd_defect
        cmd_defect(cwd, rest[0], rest[1], as_json=as_json)

    elif command == "mcp-server":
        from testmo.integrations.mcp_server import run_server
        run_server()

    elif command in ("help", "--help", "-h", None):
        print(USAGE)

    else:
        print(f"Unknown command: {command}", file=sys.stderr)
        print(USAGE)
        sys.exit(1)
