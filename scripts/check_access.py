"""CLI for inspecting the route permission matrix.

Usage::

    uv run python -m scripts.check_access <command> [options]

Commands:
    list-roles      Print every role with its allowed route prefixes
    check           Check whether a role may open a path
    classify        Show whether a path is public or protected
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable

from school_gateway.auth.permissions import (
    PermissionMatrix,
    RouteClass,
    permission_matrix,
    route_classifier,
)


def list_roles(_args: argparse.Namespace, matrix: PermissionMatrix) -> int:
    """Print the permission matrix."""
    for role, prefixes in sorted(matrix.rules.items()):
        print(f"{role}:")
        for prefix in prefixes:
            print(f"  {prefix}")
    return 0


def check(args: argparse.Namespace, matrix: PermissionMatrix) -> int:
    """Exit 0 if the role may open the path, 1 otherwise."""
    if route_classifier.classify(args.path) is RouteClass.PUBLIC:
        print(f"{args.path} is public")
        return 0

    if matrix.permitted(args.role, args.path):
        print(f"ALLOW {args.role} -> {args.path}")
        return 0

    print(f"DENY  {args.role} -> {args.path}", file=sys.stderr)
    return 1


def classify(args: argparse.Namespace, _matrix: PermissionMatrix) -> int:
    route_class = route_classifier.classify(args.path)
    matched = route_classifier.matching_public_route(args.path)
    suffix = f" (matches {matched})" if matched else ""
    print(f"{args.path}: {route_class}{suffix}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect gateway route permissions")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list-roles", help="Print every role with its prefixes")

    p_check = sub.add_parser("check", help="Check whether a role may open a path")
    p_check.add_argument("--role", required=True)
    p_check.add_argument("--path", required=True)

    p_classify = sub.add_parser("classify", help="Public or protected")
    p_classify.add_argument("--path", required=True)

    return parser


COMMANDS: dict[str, Callable[[argparse.Namespace, PermissionMatrix], int]] = {
    "list-roles": list_roles,
    "check": check,
    "classify": classify,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return COMMANDS[args.command](args, permission_matrix)


if __name__ == "__main__":
    sys.exit(main())
