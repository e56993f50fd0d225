#!/usr/bin/env python3
"""
Inkpost -- command-line tools for the custom redirects file.

Usage:
  python main.py check
  python main.py check content/data/redirects.json
  python main.py check redirects.json --json
  python main.py resolve /old-page
  python main.py resolve "/blog/2019/hello/?ref=feed" --file redirects.json

Without a FILE argument the redirects file configured for the server
(<CONTENT_PATH>/data/redirects.json) is used, which needs the same
environment as the server (SECRET_KEY, or DEBUG=true).
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from redirects.compiler import RedirectConfigError, load_rule_set
from redirects.router import RedirectRouter


def _redirects_file(path: Optional[str]) -> Path:
    if path:
        return Path(path)
    from core.config import get_settings

    return get_settings().redirects_file


def _max_age(seconds: Optional[int]) -> int:
    if seconds is not None:
        return seconds
    from core.config import get_settings

    return get_settings().redirects_max_age


def _check(args: argparse.Namespace) -> int:
    source = _redirects_file(args.file)
    try:
        rule_set = load_rule_set(source)
    except RedirectConfigError as exc:
        print(f"  [!] {source}: {exc}")
        if exc.index is not None:
            print(f"      rule #{exc.index}" + (f", field '{exc.field}'" if exc.field else ""))
        return 1

    if args.json:
        rules = [{"from": r.from_pattern, "to": r.to, "permanent": r.permanent} for r in rule_set]
        print(json.dumps(rules, indent=2))
        return 0

    if not source.exists():
        print(f"  No redirects file at {source} -- custom redirects disabled.")
        return 0
    print(f"\n  {source}: {len(rule_set)} rule(s)")
    print("  " + "─" * 40)
    for rule in rule_set:
        print(f"  {rule.status_code}  {rule.from_pattern}  ->  {rule.to}")
    print()
    return 0


def _resolve(args: argparse.Namespace) -> int:
    source = _redirects_file(args.file)
    try:
        rule_set = load_rule_set(source)
    except RedirectConfigError as exc:
        print(f"  [!] {source}: {exc}")
        return 1

    router = RedirectRouter(rule_set, max_age=_max_age(args.max_age))
    result = router.match(urlsplit(args.path).path, args.path)
    if result is None:
        print(f"  {args.path}: no redirect")
        return 0
    print(f"  {args.path}  ->  {result.status_code} {result.location}")
    print(f"  Cache-Control: {result.cache_control}")
    print(f"  rule: {result.rule.from_pattern}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="inkpost",
        description="Validate and try out the custom redirects file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py check
  python main.py check redirects.json --json
  python main.py resolve /old-page --file redirects.json
        """,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    check = commands.add_parser("check", help="Compile the redirects file and list its rules")
    check.add_argument("file", nargs="?", metavar="FILE", help="Redirects file (default: the server's)")
    check.add_argument("--json", action="store_true", help="Print the normalized rules as JSON")
    check.set_defaults(handler=_check)

    resolve = commands.add_parser("resolve", help="Show the redirect a request path would receive")
    resolve.add_argument("path", metavar="PATH", help="Request path, optionally with a query string")
    resolve.add_argument("--file", metavar="FILE", help="Redirects file (default: the server's)")
    resolve.add_argument(
        "--max-age",
        type=int,
        default=None,
        metavar="SECONDS",
        help="Cache lifetime for permanent redirects (default: REDIRECTS_MAX_AGE, one year)",
    )
    resolve.set_defaults(handler=_resolve)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
