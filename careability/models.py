"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple, Union

Scope = Union[str, Tuple[str, ...]]
ScopeCheck = Callable[[Any, "RuleContext"], bool]


@dataclass(frozen=True)
class Entity:
    """A node of the organisational hierarchy. Must form a tree."""
    id: str
    name: str
    entities: Tuple["Entity", ...] = ()


@dataclass(frozen=True)
class PermissionDeclaration:
    """An allow (or, when inverted, forbid) rule as written in a role."""
    actions: Union[str, Tuple[str, ...]]
    subject: Union[str, Tuple[str, ...]]
    scope: Optional[Scope] = None
    conditions: Optional[Any] = None
    inverted: bool = False
    reason: Optional[str] = None


@dataclass(frozen=True)
class Role:
    """Static role configuration, shared by every user holding it."""
    name: str
    permissions: Tuple[PermissionDeclaration, ...]
    description: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedPermission:
    """A declaration bound to one user: conditions resolved, scope callable."""
    actions: Union[str, Tuple[str, ...]]
    subject: Union[str, Tuple[str, ...]]
    scope: Union[None, ScopeCheck, Tuple[ScopeCheck, ...]] = None
    conditions: Optional[Any] = None
    inverted: bool = False
    reason: Optional[str] = None


@dataclass(frozen=True)
class RuleContext:
    """Passed to scope checks; `subject` is the type name being checked."""
    action: str
    subject: str
    rule: ResolvedPermission


@dataclass
class User:
    """The acting user. `ability` is filled in by decoration."""
    id: str
    entity: Entity
    roles: List[Role] = field(default_factory=list)
    display_name: Optional[str] = None
    ability: Optional[Any] = field(default=None, repr=False, compare=False)

    def copy(self) -> "User":
        """Return an undecorated copy sharing the (frozen) entity and roles."""
        return User(
            id=self.id,
            entity=self.entity,
            roles=list(self.roles),
            display_name=self.display_name,
        )
