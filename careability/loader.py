"""
Build entities, roles and users from a JSON fixture document.

Layout:

    {
      "entities": {"id": "sm", "name": "...", "entities": [...]},
      "roles":    {"Nurse": {"name": "nurse", "permissions": [...]}},
      "users":    [{"id": "uid1", "entity": "hta1", "roles": ["Nurse"]}],
      "subjects": {"patientHTA1": {"caregiverId": "uid1", "entityIds": ["hta1"]}},
      "checks":   [{"user": "uid1", "action": "read", "subject": "patientHTA1",
                    "subject_type": "Patient", "expect": true}]
    }

A check subject is a key of "subjects", "user:<id>", "entity:<id>", an inline
object, or omitted for type-level checks.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from careability.models import Entity, PermissionDeclaration, Role, User

PERMISSION_KEYS = {"actions", "subject", "scope", "conditions", "inverted", "reason"}


@dataclass
class Fixture:
    entities: Dict[str, Entity]
    roles: Dict[str, Role]
    users: Dict[str, User]
    subjects: Dict[str, Any] = field(default_factory=dict)
    checks: List[Dict[str, Any]] = field(default_factory=list)


def _tuple_or_str(value):
    if isinstance(value, list):
        return tuple(value)
    return value


def require_keys(data: Any, keys, what: str) -> None:
    """Raise ValueError unless *data* is an object carrying every key."""
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be an object, got {data!r}")
    missing = [key for key in keys if key not in data]
    if missing:
        raise ValueError(f"{what} is missing {', '.join(repr(k) for k in missing)}: {data!r}")


def entity_from_dict(data: Dict[str, Any]) -> Entity:
    if not isinstance(data, dict) or "id" not in data:
        raise ValueError(f"Entity without id: {data!r}")
    return Entity(
        id=str(data["id"]),
        name=str(data.get("name", data["id"])),
        entities=tuple(entity_from_dict(child) for child in data.get("entities", [])),
    )


def index_entities(root: Entity) -> Dict[str, Entity]:
    """Map every entity id in the tree to its node."""
    index = {root.id: root}
    for child in root.entities:
        index.update(index_entities(child))
    return index


def permission_from_dict(data: Dict[str, Any]) -> PermissionDeclaration:
    if not isinstance(data, dict):
        raise ValueError(f"Permission must be an object, got {data!r}")
    unknown = set(data) - PERMISSION_KEYS
    if unknown:
        raise ValueError(f"Unknown permission keys: {', '.join(sorted(unknown))}")
    if "actions" not in data or "subject" not in data:
        raise ValueError(f"Permission needs 'actions' and 'subject': {data!r}")
    return PermissionDeclaration(
        actions=_tuple_or_str(data["actions"]),
        subject=_tuple_or_str(data["subject"]),
        scope=_tuple_or_str(data.get("scope")),
        conditions=data.get("conditions"),
        inverted=bool(data.get("inverted", False)),
        reason=data.get("reason"),
    )


def role_from_dict(key: str, data: Dict[str, Any]) -> Role:
    require_keys(data, (), f"Role {key!r}")
    description = data.get("description", ())
    if isinstance(description, str):
        description = (description,)
    return Role(
        name=str(data.get("name", key)),
        permissions=tuple(permission_from_dict(p) for p in data.get("permissions", [])),
        description=tuple(description),
    )


def user_from_dict(data: Dict[str, Any], entities: Dict[str, Entity], roles: Dict[str, Role]) -> User:
    require_keys(data, ("id", "entity"), "User")
    entity_id = data["entity"]
    if entity_id not in entities:
        raise ValueError(f"User {data.get('id')!r} references unknown entity {entity_id!r}")
    missing = [name for name in data.get("roles", []) if name not in roles]
    if missing:
        raise ValueError(f"User {data.get('id')!r} references unknown roles: {', '.join(missing)}")
    return User(
        id=str(data["id"]),
        entity=entities[entity_id],
        roles=[roles[name] for name in data.get("roles", [])],
        display_name=data.get("display_name"),
    )


def parse_fixture(document: Dict[str, Any]) -> Fixture:
    if not isinstance(document, dict):
        raise ValueError("Fixture must be a JSON object.")
    root = document.get("entities")
    if not root:
        raise ValueError("Fixture has no entity tree.")
    entities = index_entities(entity_from_dict(root))
    roles = {key: role_from_dict(key, data) for key, data in document.get("roles", {}).items()}
    users: Dict[str, User] = {}
    for data in document.get("users", []):
        user = user_from_dict(data, entities, roles)
        users[user.id] = user
    return Fixture(
        entities=entities,
        roles=roles,
        users=users,
        subjects=dict(document.get("subjects", {})),
        checks=list(document.get("checks", [])),
    )


def load_fixture(path) -> Fixture:
    with Path(path).open(encoding="utf-8") as fh:
        return parse_fixture(json.load(fh))


def resolve_subject(fixture: Fixture, ref: Optional[Any]) -> Optional[Any]:
    """Turn a check's subject reference into the object to check."""
    if ref is None or isinstance(ref, dict):
        return ref
    if not isinstance(ref, str):
        raise ValueError(f"Subject must be a reference string or an object, got {ref!r}")
    if ref.startswith("user:"):
        user_id = ref[len("user:"):]
        if user_id not in fixture.users:
            raise ValueError(f"Unknown user subject {user_id!r}")
        return fixture.users[user_id]
    if ref.startswith("entity:"):
        entity_id = ref[len("entity:"):]
        if entity_id not in fixture.entities:
            raise ValueError(f"Unknown entity subject {entity_id!r}")
        return fixture.entities[entity_id]
    if ref not in fixture.subjects:
        raise ValueError(f"Unknown subject {ref!r}")
    return fixture.subjects[ref]
