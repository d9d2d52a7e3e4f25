"""
Scenario reports – run a fixture's checks and tabulate PASS/FAIL results.
"""

from typing import Dict, List

import pandas as pd

from careability.config import MAX_PREVIEW_ROWS
from careability.loader import Fixture, require_keys, resolve_subject
from careability.models import User
from careability.rbac import decorate_user_immutable

CHECK_KEYS = ("user", "action", "subject_type", "expect")

REPORT_COLUMNS = [
    "user", "roles", "action", "subject", "subject_type", "expect", "result", "status",
]


def _subject_label(ref) -> str:
    if ref is None:
        return "-"
    if isinstance(ref, dict):
        return ref.get("id") or "(new)"
    return str(ref)


def run_checks(fixture: Fixture) -> pd.DataFrame:
    """Evaluate every check in *fixture*; one row per check."""
    decorated: Dict[str, User] = {}
    rows: List[dict] = []
    for check in fixture.checks:
        require_keys(check, CHECK_KEYS, "Check")
        user_id = check["user"]
        if user_id not in fixture.users:
            raise ValueError(f"Check references unknown user {user_id!r}")
        if user_id not in decorated:
            decorated[user_id] = decorate_user_immutable(fixture.users[user_id])
        user = decorated[user_id]

        subject_type = check["subject_type"]
        subject = resolve_subject(fixture, check.get("subject"))
        subject_ref = subject_type if subject is None else (subject, subject_type)
        result = user.ability.can(check["action"], subject_ref)
        expect = bool(check["expect"])

        rows.append({
            "user": user.display_name or user.id,
            "roles": ", ".join(role.name for role in user.roles),
            "action": check["action"],
            "subject": _subject_label(check.get("subject")),
            "subject_type": subject_type,
            "expect": expect,
            "result": result,
            "status": "PASS" if result == expect else "FAIL",
        })
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def count_failures(df: pd.DataFrame) -> int:
    if df.empty:
        return 0
    return int((df["status"] == "FAIL").sum())


def format_report(df: pd.DataFrame, max_rows: int = MAX_PREVIEW_ROWS) -> str:
    """Markdown table of the results followed by a one-line verdict."""
    if df.empty:
        return "(no checks in fixture)"
    table = df.head(max_rows).to_markdown(index=False)
    if len(df) > max_rows:
        table += f"\n... ({len(df) - max_rows} more rows)"
    failed = count_failures(df)
    verdict = f"FAILED: {failed} of {len(df)}" if failed else f"All {len(df)} checks passed."
    return f"{table}\n\n{verdict}"
