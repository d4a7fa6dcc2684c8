#!/usr/bin/env python3
"""
CLI for the RetroScript engine.

Usage:
    python -m retroscript run FILE.retro [--var NAME=VALUE ...] [--timeout S]
    python -m retroscript check FILE.retro
    python -m retroscript tokens FILE.retro
    python -m retroscript ast FILE.retro

Examples:
    # Check syntax
    python -m retroscript check scripts/hello.retro

    # Run with host variables; script files see C:/... under ./sandbox
    python -m retroscript run scripts/hello.retro \
        --var name=World --var count=3 --root ./sandbox

    # Show what the tokenizer and parser make of a script
    python -m retroscript tokens scripts/hello.retro
    python -m retroscript ast scripts/hello.retro
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .host import DialogService


class ConsoleDialogs(DialogService):
    """Dialogs answered on the terminal."""

    async def alert(self, message: str) -> None:
        print(f"[alert] {message}")
        await asyncio.to_thread(input, "Press Enter to continue...")

    async def confirm(self, message: str) -> bool:
        answer = await asyncio.to_thread(input, f"[confirm] {message} [y/N] ")
        return answer.strip().lower() in ("y", "yes")

    async def prompt(self, message: str, default: str = "") -> Optional[str]:
        suffix = f" [{default}]" if default else ""
        try:
            answer = await asyncio.to_thread(input, f"[prompt] {message}{suffix} ")
        except EOFError:
            return None
        return answer or default


def parse_param(param_str: str) -> tuple:
    """Parse a variable string like 'name=value' into (name, typed_value)."""
    if '=' not in param_str:
        raise ValueError(f"Invalid variable format: {param_str} (expected name=value)")

    name, value_str = param_str.split('=', 1)
    name = name.strip().lstrip('$')
    value_str = value_str.strip()

    if value_str.lower() == 'true':
        return (name, True)
    elif value_str.lower() == 'false':
        return (name, False)

    try:
        return (name, int(value_str))
    except ValueError:
        pass

    try:
        return (name, float(value_str))
    except ValueError:
        pass

    # Strip quotes if present
    if (value_str.startswith('"') and value_str.endswith('"')) or \
       (value_str.startswith("'") and value_str.endswith("'")):
        value_str = value_str[1:-1]

    return (name, value_str)


def read_source(path_str: str) -> Optional[str]:
    source_path = Path(path_str)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return None
    return source_path.read_text(encoding="utf-8")


def cmd_check(args):
    """Check a script for syntax errors."""
    from .engine import ScriptEngine
    from .errors import ScriptSyntaxError

    source = read_source(args.file)
    if source is None:
        return 1

    try:
        program = ScriptEngine().parse(source, filename=args.file)
    except ScriptSyntaxError as e:
        print(e.diagnostic.format(), file=sys.stderr)
        return 1

    print(f"OK: {Path(args.file).name} - {len(program.statements)} statement(s), no errors")
    return 0


def cmd_tokens(args):
    """Print the token stream of a script."""
    from .lexer import tokenize

    source = read_source(args.file)
    if source is None:
        return 1

    status = 0
    for token in tokenize(source, filename=args.file):
        print(f"{token.line:4d}:{token.column:<3d} {token.type.name:<12} {token.lexeme!r}")
        if token.type.name == "ERROR":
            status = 1
    return status


def cmd_ast(args):
    """Print the statement tree of a script."""
    from .ast import print_ast
    from .engine import ScriptEngine
    from .errors import ScriptSyntaxError

    source = read_source(args.file)
    if source is None:
        return 1

    try:
        program = ScriptEngine().parse(source, filename=args.file)
    except ScriptSyntaxError as e:
        print(e.diagnostic.format(), file=sys.stderr)
        return 1

    print_ast(program)
    return 0


def cmd_run(args):
    """Run a script with console dialogs and a sandboxed file system."""
    from .config import ConfigError, load_config
    from .engine import ScriptEngine
    from .host import HostServices, LocalFileSystem

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    logging.basicConfig(level=args.log_level or config.log_level,
                        format="%(levelname)s %(name)s: %(message)s")

    source = read_source(args.file)
    if source is None:
        return 1

    variables: Dict[str, Any] = {}
    for param_str in args.var or []:
        try:
            name, value = parse_param(param_str)
            variables[name] = value
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    host = HostServices.in_memory(
        files=LocalFileSystem(args.root),
        dialogs=ConsoleDialogs(),
    )
    host.events.subscribe("script:output", lambda _, payload: print(payload["message"]))
    host.events.subscribe("notification:show",
                          lambda _, payload: print(f"[notify] {payload['message']}"))

    engine = ScriptEngine(host, config)
    result = asyncio.run(engine.run(source, variables, timeout=args.timeout,
                                    filename=args.file))

    if result.cancelled:
        print("Script cancelled", file=sys.stderr)
        return 1
    if not result.success:
        print(result.error.diagnostic.format(), file=sys.stderr)
        return 1

    if result.result is not None:
        print(f"Result: {result.result!r}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        prog='python -m retroscript',
        description='RetroScript engine and runner',
    )

    subparsers = parser.add_subparsers(dest='action', required=True)

    # check command
    check_parser = subparsers.add_parser('check', help='Check a script for syntax errors')
    check_parser.add_argument('file', help='Script source file')

    # tokens command
    tokens_parser = subparsers.add_parser('tokens', help='Print the tokens of a script')
    tokens_parser.add_argument('file', help='Script source file')

    # ast command
    ast_parser = subparsers.add_parser('ast', help='Print the statement tree of a script')
    ast_parser.add_argument('file', help='Script source file')

    # run command
    run_parser = subparsers.add_parser('run', help='Run a script')
    run_parser.add_argument('file', help='Script source file')
    run_parser.add_argument('-v', '--var', action='append', metavar='NAME=VALUE',
                            help='Host variable (can be repeated)')
    run_parser.add_argument('-t', '--timeout', type=float, metavar='SECONDS',
                            help='Override the configured time limit')
    run_parser.add_argument('-c', '--config', metavar='FILE',
                            help='Engine configuration (YAML)')
    run_parser.add_argument('--root', default='.', metavar='DIR',
                            help='Directory that script paths like C:/... resolve under')
    run_parser.add_argument('--log-level',
                            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                            help='Logging level (default from config)')

    args = parser.parse_args()

    if args.action == 'check':
        return cmd_check(args)
    elif args.action == 'tokens':
        return cmd_tokens(args)
    elif args.action == 'ast':
        return cmd_ast(args)
    elif args.action == 'run':
        return cmd_run(args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
