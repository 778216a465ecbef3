"""
CALLWARDEN CLI

Usage:
    callwarden show policy.yaml
    callwarden check policy.yaml --function func1 --scope ClassA.run --file app.py
    callwarden run policy.yaml script.py [script args...]
"""

from __future__ import annotations

import argparse
import runpy
import sys
from pathlib import Path

from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from callwarden.config_loader import PolicyLoadError, load_policy
from callwarden.enforcement import Violation
from callwarden.governance import AccessRule, WatchTable, compile_watchlist
from callwarden.interception.audit import AuditHookInterceptor
from callwarden.operations import TrappedOperation
from callwarden.warden import Warden, configure

console = Console()

EXIT_BLOCKED = 2


def _rule_table(title: str, rules: dict[str, AccessRule]) -> Table:
    table = Table(title=title, show_lines=True)
    table.add_column("Watched", style="cyan")
    table.add_column("Default")
    table.add_column("Except (scope / file)")
    for key, rule in rules.items():
        colour = "red" if rule.default.value == "block" else "green"
        excepts = "\n".join(
            f"{spec.scope or '*'} / {spec.file or '*'}" for spec in rule.exceptions
        ) or "[dim]none[/]"
        table.add_row(key, f"[{colour}]{rule.default.value}[/]", excepts)
    return table


def cmd_show(args: argparse.Namespace) -> int:
    table: WatchTable = compile_watchlist(load_policy(args.policy))
    console.print(_rule_table("Files", dict(table.files)))
    console.print(_rule_table("Functions", dict(table.functions)))
    console.print(
        f"[bold]Halt on incident:[/] {table.halt_on_incident}  |  "
        f"[bold]Summary:[/] {table.summary()}"
    )
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    warden = Warden(compile_watchlist(load_policy(args.policy)))
    op = TrappedOperation.create(
        args.function,
        arguments=args.arg or [],
        scope=args.scope,
        file=args.file or "",
    )
    incident = warden.evaluate(op)
    if incident is None:
        console.print(f"[bold green]ALLOW[/] {op.function} from {op.scope}")
        return 0
    console.print(
        f"[bold red]BLOCK[/] {op.function} from {op.scope} "
        f"([yellow]{incident.kind.value}[/]: {incident.subject})"
    )
    return EXIT_BLOCKED


def cmd_run(args: argparse.Namespace) -> int:
    script = Path(args.script)
    if not script.is_file():
        console.print(f"[red]Script not found: {script}[/]")
        return 1

    interceptor = AuditHookInterceptor()
    configure(
        load_policy(args.policy),
        interceptor,
        halt_on_incident=False if args.no_halt else None,
    )
    interceptor.install()

    sys.argv = [str(script), *args.script_args]
    try:
        runpy.run_path(str(script), run_name="__main__")
    except Violation as e:
        console.print(Panel(str(e), title="Policy violation", border_style="red"))
        return EXIT_BLOCKED
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="callwarden",
        description="Runtime access-policy enforcement for files and functions",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Print the compiled watch table")
    show.add_argument("policy", help="Policy YAML file")
    show.set_defaults(func=cmd_show)

    check = sub.add_parser("check", help="Decide a single synthetic operation")
    check.add_argument("policy", help="Policy YAML file")
    check.add_argument("--function", required=True, help="Called function or operation")
    check.add_argument("--scope", help="Calling scope, e.g. ClassA.method")
    check.add_argument("--file", help="File the call is made from")
    check.add_argument("--arg", action="append", help="Operation argument (repeatable)")
    check.set_defaults(func=cmd_check)

    run = sub.add_parser("run", help="Run a script under the warden")
    run.add_argument("policy", help="Policy YAML file")
    run.add_argument("script", help="Python script to run")
    run.add_argument("script_args", nargs=argparse.REMAINDER)
    run.add_argument("--no-halt", action="store_true", help="Raise violations instead of exiting")
    run.set_defaults(func=cmd_run)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "WARNING")

    try:
        return args.func(args)
    except PolicyLoadError as e:
        console.print(f"[red]{e}[/]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
