"""
Command-line tool for trying out roles against a fixture.

    python -m careability.cli check fixtures/smart_monitor.json
    python -m careability.cli fixtures/smart_monitor.json     (interactive)

Without a path the fixture is read from $ABILITY_FIXTURES.
"""

import argparse
import json
import sys
from typing import Any, Optional, Tuple

from careability.config import FIXTURES_ENV, configure_logging, get_env
from careability.loader import Fixture, load_fixture, resolve_subject
from careability.rbac import decorate_user_immutable
from careability.report import count_failures, format_report, run_checks


def parse_query(fixture: Fixture, query: str) -> Tuple[str, Any]:
    """
    Parse ``action Type [subject]`` into (action, subject_ref). The subject is
    inline JSON or a fixture reference such as ``user:uid3``.
    """
    parts = query.split(None, 2)
    if len(parts) < 2:
        raise ValueError("Expected: <action> <SubjectType> [subject]")
    action, subject_type = parts[0], parts[1]
    if len(parts) == 2:
        return action, subject_type
    raw = parts[2].strip()
    if raw.startswith("{"):
        subject = json.loads(raw)
        if not isinstance(subject, dict):
            raise ValueError("Inline subject must be a JSON object")
    else:
        subject = resolve_subject(fixture, raw)
    return action, (subject, subject_type)


def run_check_mode(fixture: Fixture) -> int:
    try:
        df = run_checks(fixture)
    except ValueError as e:
        print("\n[ERROR] Could not run the fixture checks.")
        print("Details:", e)
        return 1
    print(format_report(df))
    return 1 if count_failures(df) else 0


def interactive(fixture: Fixture) -> None:
    try:
        user_id = input("Enter user id (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not user_id or user_id.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    user = fixture.users.get(user_id)
    if user is None:
        print(f"\n[ERROR] Unknown user {user_id!r}.")
        print("Known users:", ", ".join(sorted(fixture.users)))
        return

    try:
        user = decorate_user_immutable(user)
    except ValueError as e:
        print("\n[ERROR] Could not build permissions for this user.")
        print("Details:", e)
        return

    print(f"\n[auth] {user.display_name or user.id} at {user.entity.name} "
          f"(roles={', '.join(role.name for role in user.roles)})")
    print(f"[auth] {len(user.ability.rules)} rules loaded")

    while True:
        try:
            q = input("\nCheck <action> <SubjectType> [subject] (or 'quit'): ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not q:
            continue
        if q.lower() in {"quit", "exit"}:
            print("Goodbye.")
            break

        try:
            action, subject_ref = parse_query(fixture, q)
            allowed = user.ability.can(action, subject_ref)
            rule = user.ability.relevant_rule_for(action, subject_ref)
        except ValueError as e:
            print("\n[ERROR] Check failed.")
            print("Details:", e)
            continue

        print(f"[check] {'ALLOWED' if allowed else 'DENIED'}")
        if rule is not None:
            print(f"[check] decided by: actions={rule.actions} subject={rule.subject}"
                  f"{' (inverted)' if rule.inverted else ''}")


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(prog="careability")
    parser.add_argument("mode", nargs="?", default=None,
                        help="'check' to run the fixture's checks, omit for interactive use")
    parser.add_argument("path", nargs="?", default=None, help="fixture JSON file")
    args = parser.parse_args(argv)

    # `careability <path>` is interactive mode
    mode, path = args.mode, args.path
    if mode not in (None, "check") and path is None:
        mode, path = None, mode

    configure_logging()
    path = path or get_env(FIXTURES_ENV)
    print(f"[init] Loading fixture {path}")
    try:
        fixture = load_fixture(path)
    except (OSError, ValueError) as e:
        print(f"[FATAL] Could not load fixture: {e}", file=sys.stderr)
        return 1
    print(f"[init] {len(fixture.users)} users, {len(fixture.roles)} roles, "
          f"{len(fixture.entities)} entities")

    if mode == "check":
        return run_check_mode(fixture)
    interactive(fixture)
    return 0


if __name__ == "__main__":
    sys.exit(main())
