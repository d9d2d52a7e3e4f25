"""
Unit tests for the rule engine (Ability).
"""

import pytest

from careability.ability import (
    Ability,
    detect_subject_type,
    matches_conditions,
    parse_subject_ref,
)
from careability.errors import ForbiddenError
from careability.models import Entity, ResolvedPermission, User


# ── Helpers ──────────────────────────────────────────────────────────

def rule(actions, subject, **kwargs) -> ResolvedPermission:
    return ResolvedPermission(actions=actions, subject=subject, **kwargs)


class Article:
    def __init__(self, author_id, published=False):
        self.authorId = author_id
        self.published = published


class Tagged:
    __type__ = "Patient"


# ── Tests: subject references ────────────────────────────────────────

def test_parse_subject_ref_forms():
    patient = {"id": "p1"}
    assert parse_subject_ref("Patient") == ("Patient", None)
    assert parse_subject_ref((patient, "Patient")) == ("Patient", patient)
    assert parse_subject_ref([patient, "Patient"]) == ("Patient", patient)


def test_detect_subject_type():
    assert detect_subject_type(Article("a")) == "Article"
    assert detect_subject_type(Tagged()) == "Patient"
    assert detect_subject_type({"__type": "Patient"}) == "Patient"
    assert detect_subject_type(User("u", Entity("e", "E"))) == "User"


# ── Tests: actions and subjects ──────────────────────────────────────

def test_no_rules_denies_everything():
    ability = Ability([])
    assert ability.can("read", "Patient") is False
    assert ability.cannot("read", "Patient") is True


def test_plain_rule_matches_action_and_subject():
    ability = Ability([rule("read", "Patient")])
    assert ability.can("read", "Patient")
    assert ability.can("read", ({"id": "p"}, "Patient"))
    assert ability.cannot("update", "Patient")
    assert ability.cannot("read", "User")


def test_manage_all_allows_everything():
    ability = Ability([rule("manage", "all")])
    for action in ("read", "create", "update", "delete", "addBulk"):
        for subject in ("Patient", "User", "Entity"):
            assert ability.can(action, subject)
            assert ability.can(action, ({"entityIds": []}, subject))


def test_crud_alias():
    ability = Ability([rule("crud", "Patient")])
    for action in ("create", "read", "update", "delete"):
        assert ability.can(action, "Patient")
    assert ability.cannot("addBulk", "Patient")


def test_custom_alias_nests():
    ability = Ability([rule("modify", "Patient")], aliases={"modify": ("crud", "addBulk")})
    assert ability.can("addBulk", "Patient")
    assert ability.can("delete", "Patient")
    assert ability.expand_actions("modify") >= {"create", "read", "update", "delete", "addBulk"}


def test_alias_cannot_refer_to_itself():
    with pytest.raises(ValueError, match="cannot refer to itself"):
        Ability([], aliases={"loop": ("loop",)})


def test_multiple_actions_and_subjects():
    ability = Ability([rule(("read", "update"), ("User", "Entity"))])
    assert ability.can("update", "Entity")
    assert ability.can("read", "User")
    assert ability.cannot("read", "Patient")


# ── Tests: conditions ────────────────────────────────────────────────

def test_matches_conditions_operators():
    subject = {"entityIds": ["hta1", "hta2"], "age": 40, "entity": {"id": "cvs"}}
    assert matches_conditions({"entityIds": "hta1"}, subject)
    assert matches_conditions({"entity.id": "cvs"}, subject)
    assert matches_conditions({"age": {"$gte": 18, "$lt": 65}}, subject)
    assert matches_conditions({"entityIds": {"$in": ["se1", "hta2"]}}, subject)
    assert not matches_conditions({"entityIds": {"$nin": ["hta2"]}}, subject)
    assert matches_conditions({"caregiverId": {"$exists": False}}, subject)
    assert not matches_conditions({"age": {"$gt": "x"}}, subject)
    assert matches_conditions({"age": {"$ne": 41}}, subject)


def test_unknown_operator_fails():
    with pytest.raises(ValueError, match="Unsupported condition operator"):
        matches_conditions({"age": {"$regex": "4"}}, {"age": 40})


def test_conditions_apply_to_instances_only():
    ability = Ability([rule("update", "Article", conditions={"authorId": "u1"})])
    assert ability.can("update", "Article")
    assert ability.can("update", Article("u1"))
    assert ability.cannot("update", Article("u2"))


# ── Tests: scope checks ──────────────────────────────────────────────

def test_single_scope_receives_subject_and_context():
    seen = []

    def check(subject, ctx):
        seen.append((subject, ctx.action, ctx.subject))
        return subject["ok"]

    ability = Ability([rule("read", "Patient", scope=check)])
    assert ability.can("read", ({"ok": True}, "Patient"))
    assert ability.cannot("read", ({"ok": False}, "Patient"))
    assert seen[0] == ({"ok": True}, "read", "Patient")


def test_scope_context_carries_checked_type_for_all_rules():
    seen = []
    ability = Ability([rule("read", "all", scope=lambda s, ctx: seen.append(ctx.subject) or True)])
    assert ability.can("read", ({}, "User"))
    assert seen == ["User"]


def test_multiple_scopes_must_all_hold():
    yes = lambda subject, ctx: True
    no = lambda subject, ctx: False
    assert Ability([rule("create", "Patient", scope=(yes, yes))]).can("create", ({}, "Patient"))
    assert Ability([rule("create", "Patient", scope=(yes, no))]).cannot("create", ({}, "Patient"))
    assert Ability([rule("create", "Patient", scope=(no, yes))]).cannot("create", ({}, "Patient"))


def test_scope_not_evaluated_for_type_level_checks():
    def explode(subject, ctx):
        raise AssertionError("should not be called")

    assert Ability([rule("read", "Patient", scope=explode)]).can("read", "Patient")


# ── Tests: precedence and inverted rules ─────────────────────────────

def test_later_rule_wins():
    ability = Ability([
        rule("manage", "Patient"),
        rule("delete", "Patient", inverted=True),
    ])
    assert ability.can("read", "Patient")
    assert ability.cannot("delete", "Patient")


def test_earlier_inverted_rule_is_overridden_by_later_allow():
    ability = Ability([
        rule("delete", "Patient", inverted=True),
        rule("manage", "Patient"),
    ])
    assert ability.can("delete", "Patient")


def test_conditional_inverted_rule():
    ability = Ability([
        rule("update", "Article"),
        rule("update", "Article", conditions={"published": True}, inverted=True),
    ])
    assert ability.can("update", "Article")
    assert ability.can("update", Article("u1", published=False))
    assert ability.cannot("update", Article("u1", published=True))


def test_rules_are_considered_in_any_matching_order():
    ability = Ability([
        rule("read", "Patient", conditions={"entityIds": "a"}),
        rule("read", "Patient", conditions={"entityIds": "b"}),
    ])
    assert ability.can("read", ({"entityIds": ["a"]}, "Patient"))
    assert ability.can("read", ({"entityIds": ["b"]}, "Patient"))
    assert ability.cannot("read", ({"entityIds": ["c"]}, "Patient"))


def test_rules_for_returns_highest_precedence_first():
    first = rule("read", "Patient")
    second = rule("manage", "all")
    third = rule("update", "Patient")
    ability = Ability([first, second, third])
    assert ability.rules_for("read", "Patient") == [second, first]
    assert ability.relevant_rule_for("read", "Patient") is second


# ── Tests: ensure_can ────────────────────────────────────────────────

def test_ensure_can_passes_when_allowed():
    Ability([rule("read", "Patient")]).ensure_can("read", "Patient")


def test_ensure_can_raises_with_default_message():
    with pytest.raises(ForbiddenError, match='Cannot execute "delete" on "Patient"') as e:
        Ability([rule("read", "Patient")]).ensure_can("delete", "Patient")
    assert e.value.action == "delete"
    assert e.value.subject_type == "Patient"


def test_ensure_can_uses_rule_reason():
    ability = Ability([
        rule("manage", "all"),
        rule("delete", "Patient", inverted=True, reason="Patients are archived, never deleted"),
    ])
    with pytest.raises(ForbiddenError, match="archived"):
        ability.ensure_can("delete", ({"id": "p"}, "Patient"))
