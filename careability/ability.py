"""
Rule engine – answers can/cannot for a flat list of resolved permissions.

A rule applies to an action when its actions contain that action, an alias
that expands to it, or "manage". It applies to a subject type when its subject
names that type or is "all". Later rules take precedence over earlier ones:
rules are scanned last to first and the first one that matches decides.
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from careability.config import ALL_SUBJECTS, DEFAULT_ALIASES, MANAGE_ACTION
from careability.errors import ForbiddenError
from careability.models import ResolvedPermission, RuleContext
from careability.scopes import get_field

logger = logging.getLogger(__name__)


def _as_tuple(value) -> Tuple:
    if value is None:
        return ()
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(value)
    return (value,)


# ── Subject references ───────────────────────────────────────────────

def detect_subject_type(subject: Any) -> str:
    """Type name of a bare subject: explicit tag first, then the class name."""
    if isinstance(subject, Mapping):
        tagged = subject.get("__type")
        return tagged if tagged else type(subject).__name__
    return getattr(subject, "__type__", None) or type(subject).__name__


def parse_subject_ref(subject_ref: Any) -> Tuple[str, Optional[Any]]:
    """
    Split a subject reference into (type name, instance).

    Accepts a type name, an ``(instance, type_name)`` pair, or a bare instance.
    """
    if isinstance(subject_ref, str):
        return subject_ref, None
    if (
        isinstance(subject_ref, (tuple, list))
        and len(subject_ref) == 2
        and isinstance(subject_ref[1], str)
    ):
        return subject_ref[1], subject_ref[0]
    return detect_subject_type(subject_ref), subject_ref


# ── Conditions ───────────────────────────────────────────────────────

def get_path(record: Any, path: str) -> Any:
    value = record
    for part in path.split("."):
        value = get_field(value, part)
        if value is None:
            return None
    return value


def _equals(value: Any, expected: Any) -> bool:
    # a list-valued field equals a scalar when any element does
    if isinstance(value, (list, tuple, set, frozenset)) and not isinstance(expected, (list, tuple)):
        return expected in value
    if isinstance(value, tuple) and isinstance(expected, list):
        return list(value) == expected
    return value == expected


def _compare(value: Any, arg: Any, op) -> bool:
    if value is None or arg is None:
        return False
    try:
        return op(value, arg)
    except TypeError:
        return False


OPERATORS = {
    "$eq": lambda value, arg: _equals(value, arg),
    "$ne": lambda value, arg: not _equals(value, arg),
    "$in": lambda value, arg: any(_equals(value, item) for item in arg),
    "$nin": lambda value, arg: not any(_equals(value, item) for item in arg),
    "$gt": lambda value, arg: _compare(value, arg, lambda a, b: a > b),
    "$gte": lambda value, arg: _compare(value, arg, lambda a, b: a >= b),
    "$lt": lambda value, arg: _compare(value, arg, lambda a, b: a < b),
    "$lte": lambda value, arg: _compare(value, arg, lambda a, b: a <= b),
    "$exists": lambda value, arg: (value is not None) == bool(arg),
}


def _is_operator_query(expected: Any) -> bool:
    return (
        isinstance(expected, Mapping)
        and bool(expected)
        and all(isinstance(key, str) and key.startswith("$") for key in expected)
    )


def matches_conditions(conditions: Mapping, subject: Any) -> bool:
    """True when every ``path: expected`` entry holds for *subject*."""
    for path, expected in conditions.items():
        value = get_path(subject, path)
        if _is_operator_query(expected):
            for op, arg in expected.items():
                if op not in OPERATORS:
                    raise ValueError(f"Unsupported condition operator {op}")
                if not OPERATORS[op](value, arg):
                    return False
        elif not _equals(value, expected):
            return False
    return True


# ── Ability ──────────────────────────────────────────────────────────

class Ability:
    """Decision object built from an ordered list of resolved permissions."""

    def __init__(self, rules: Iterable[ResolvedPermission], aliases: Optional[Mapping] = None):
        self._rules: Tuple[ResolvedPermission, ...] = tuple(rules)
        self._aliases: Dict[str, Tuple[str, ...]] = dict(DEFAULT_ALIASES)
        for name, actions in (aliases or {}).items():
            self.add_alias(name, actions)

    def __repr__(self):
        return f"Ability(rules={len(self._rules)})"

    @property
    def rules(self) -> Tuple[ResolvedPermission, ...]:
        return self._rules

    def add_alias(self, name: str, actions) -> None:
        actions = _as_tuple(actions)
        if name in actions:
            raise ValueError(f'Alias "{name}" cannot refer to itself')
        self._aliases[name] = actions

    def expand_actions(self, actions) -> Set[str]:
        """Resolve aliases (recursively) into the set of concrete actions."""
        expanded: Set[str] = set()
        queue = list(_as_tuple(actions))
        while queue:
            action = queue.pop()
            if action in expanded:
                continue
            expanded.add(action)
            queue.extend(self._aliases.get(action, ()))
        return expanded

    def _applies_to_action(self, rule: ResolvedPermission, action: str) -> bool:
        actions = self.expand_actions(rule.actions)
        return MANAGE_ACTION in actions or action in actions

    @staticmethod
    def _applies_to_subject(rule: ResolvedPermission, subject_type: str) -> bool:
        subjects = _as_tuple(rule.subject)
        return ALL_SUBJECTS in subjects or subject_type in subjects

    def rules_for(self, action: str, subject_type: str) -> List[ResolvedPermission]:
        """Rules relevant to action/subject type, highest precedence first."""
        return [
            rule for rule in reversed(self._rules)
            if self._applies_to_action(rule, action)
            and self._applies_to_subject(rule, subject_type)
        ]

    @staticmethod
    def _matches_instance(rule: ResolvedPermission, action: str, subject_type: str, subject: Any) -> bool:
        if rule.conditions is not None and not matches_conditions(rule.conditions, subject):
            return False
        if rule.scope is None:
            return True
        ctx = RuleContext(action=action, subject=subject_type, rule=rule)
        return all(check(subject, ctx) for check in _as_tuple(rule.scope))

    def relevant_rule_for(self, action: str, subject_ref: Any) -> Optional[ResolvedPermission]:
        """The rule that decides this check, or None when nothing matches."""
        subject_type, subject = parse_subject_ref(subject_ref)
        for rule in self.rules_for(action, subject_type):
            if subject is None:
                # type-level checks skip forbidding rules that need an instance
                if rule.inverted and (rule.conditions is not None or rule.scope is not None):
                    continue
                return rule
            if self._matches_instance(rule, action, subject_type, subject):
                return rule
        return None

    def can(self, action: str, subject_ref: Any) -> bool:
        rule = self.relevant_rule_for(action, subject_ref)
        allowed = rule is not None and not rule.inverted
        logger.debug("can(%s, %s) -> %s", action, parse_subject_ref(subject_ref)[0], allowed)
        return allowed

    def cannot(self, action: str, subject_ref: Any) -> bool:
        return not self.can(action, subject_ref)

    def ensure_can(self, action: str, subject_ref: Any) -> None:
        """Raise ForbiddenError unless *action* is allowed on the subject."""
        rule = self.relevant_rule_for(action, subject_ref)
        if rule is not None and not rule.inverted:
            return
        subject_type = parse_subject_ref(subject_ref)[0]
        raise ForbiddenError(action, subject_type, rule.reason if rule else None)
