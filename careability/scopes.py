"""
Relational scope functions – entity membership and caregiver checks.

Three kinds of subject relate to entities:

    users:    belong to one entity                (subject.entity.id)
    entities: are themselves nodes of the tree    (subject.id)
    patients: belong to many entities             (subject.entityIds)

When checking a subject that does not exist yet (e.g. a "create" check) the
caller passes stand-in fields instead: ``entityId`` for all three kinds and
``caregiverId`` for patients. Every scope accepts both shapes.

A patient has one primary caregiver (``caregiverId``) and any number of
other caregivers (``caregiverIds``, not including the primary).
"""

import logging
from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, List, Optional

from careability.config import ENTITY_LIST_SUBJECTS
from careability.entity_tree import UNBOUNDED, Depth, collect_ids
from careability.errors import UnsupportedSubjectError
from careability.models import RuleContext, User

logger = logging.getLogger(__name__)


class SubjectKind(str, Enum):
    USER = "User"
    ENTITY = "Entity"
    PATIENT_LIKE = "Patient"


# ── Subject field access ─────────────────────────────────────────────

def get_field(record: Any, name: str) -> Any:
    """Read *name* from a mapping or an object; None when absent."""
    if record is None:
        return None
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def subject_kind(type_name: str) -> SubjectKind:
    """Map a subject type name to the kind of entity relation it carries."""
    if type_name == SubjectKind.USER.value:
        return SubjectKind.USER
    if type_name == SubjectKind.ENTITY.value:
        return SubjectKind.ENTITY
    if type_name in ENTITY_LIST_SUBJECTS:
        return SubjectKind.PATIENT_LIKE
    raise UnsupportedSubjectError(type_name)


def subject_entity_ids(subject: Any, kind: SubjectKind) -> List[str]:
    """
    Entity ids the subject belongs to. Users and entities yield at most one
    id; patient-like subjects yield their full list.
    """
    prospective = get_field(subject, "entityId")
    if kind is SubjectKind.PATIENT_LIKE:
        if prospective:
            return [prospective]
        return list(get_field(subject, "entityIds") or ())

    if prospective:
        return [prospective]
    if kind is SubjectKind.USER:
        entity_id = get_field(get_field(subject, "entity"), "id")
    else:
        entity_id = get_field(subject, "id")
    return [entity_id] if entity_id else []


def _entity_membership(user_entity_ids: Iterable[str], subject: Any, ctx: RuleContext) -> bool:
    kind = subject_kind(ctx.subject)
    ids = set(user_entity_ids)
    subject_ids = subject_entity_ids(subject, kind)
    if kind is SubjectKind.PATIENT_LIKE:
        return bool(ids.intersection(subject_ids))
    return bool(subject_ids) and subject_ids[0] in ids


def _tree_membership(user: User, subject: Any, ctx: RuleContext, depth: Depth) -> bool:
    if BELONGS_TO_ENTITY(user, subject, ctx):
        return True
    user_entity_ids = collect_ids(user.entity, depth)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Entities for user %s: %s", user.id, ", ".join(sorted(user_entity_ids)))
    return _entity_membership(user_entity_ids, subject, ctx)


# ── Caregiver checks ─────────────────────────────────────────────────

def IS_PRIMARY_CAREGIVER(user: User, patient: Any, ctx: Optional[RuleContext] = None) -> bool:
    return user.id == get_field(patient, "caregiverId")


def IS_CAREGIVER(user: User, patient: Any, ctx: Optional[RuleContext] = None) -> bool:
    if IS_PRIMARY_CAREGIVER(user, patient, ctx):
        return True
    # a patient being created has no caregiver list yet
    caregiver_ids = get_field(patient, "caregiverIds")
    if not caregiver_ids:
        return False
    return user.id in caregiver_ids


# ── Entity membership checks ─────────────────────────────────────────

def BELONGS_TO_ENTITY(user: User, subject: Any, ctx: RuleContext) -> bool:
    """Does the subject belong to the user's own entity?"""
    return _entity_membership((user.entity.id,), subject, ctx)


def BELONGS_TO_SUB_ENTITIES(user: User, subject: Any, ctx: RuleContext) -> bool:
    """The user's entity or one of its direct children."""
    return _tree_membership(user, subject, ctx, 1)


def BELONGS_TO_ENTITY_TREE(user: User, subject: Any, ctx: RuleContext) -> bool:
    """The user's entity or anything below it."""
    return _tree_membership(user, subject, ctx, UNBOUNDED)


SCOPE_FUNCTIONS = MappingProxyType({
    "IS_PRIMARY_CAREGIVER": IS_PRIMARY_CAREGIVER,
    "IS_CAREGIVER": IS_CAREGIVER,
    "BELONGS_TO_ENTITY": BELONGS_TO_ENTITY,
    "BELONGS_TO_SUB_ENTITIES": BELONGS_TO_SUB_ENTITIES,
    "BELONGS_TO_ENTITY_TREE": BELONGS_TO_ENTITY_TREE,
})
