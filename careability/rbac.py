"""
Role-Based Access Control – expanding a user's roles into an Ability.
"""

import logging
from collections.abc import Mapping
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from careability.ability import Ability
from careability.errors import UndefinedVariableError, UnknownScopeError
from careability.models import PermissionDeclaration, ResolvedPermission, RuleContext, User
from careability.scopes import SCOPE_FUNCTIONS
from careability.templates import resolve_variables

logger = logging.getLogger(__name__)


def _scope_names(scope: Union[str, Sequence[str]]) -> Tuple[str, ...]:
    return (scope,) if isinstance(scope, str) else tuple(scope)


def _bind(fn: Callable, user: User) -> Callable[[Any, RuleContext], bool]:
    def check(subject: Any, ctx: RuleContext) -> bool:
        return fn(user, subject, ctx)
    check.__name__ = fn.__name__
    return check


def bind_scope(scope, user: User, functions: Mapping = SCOPE_FUNCTIONS):
    """
    Turn a declared scope (None, a name or a list of names) into check(s)
    bound to *user*. Several names yield a tuple; all of them must hold.
    Unknown names fail here, not at check time.
    """
    if scope is None:
        return None
    names = _scope_names(scope)
    for name in names:
        if name not in functions:
            logger.error("Unknown scope %r for user %s", name, user.id)
            raise UnknownScopeError(name)
    checks = tuple(_bind(functions[name], user) for name in names)
    if len(checks) == 1:
        return checks[0]
    return checks


def resolve_permission(
    declaration: PermissionDeclaration,
    user: User,
    functions: Mapping = SCOPE_FUNCTIONS,
) -> ResolvedPermission:
    conditions = declaration.conditions
    if conditions is not None:
        try:
            conditions = resolve_variables(conditions, {"user": user})
        except UndefinedVariableError:
            logger.error("Cannot resolve conditions %r for user %s", declaration.conditions, user.id)
            raise
    return ResolvedPermission(
        actions=declaration.actions,
        subject=declaration.subject,
        scope=bind_scope(declaration.scope, user, functions),
        conditions=conditions,
        inverted=declaration.inverted,
        reason=declaration.reason,
    )


def expand_permissions(user: User, functions: Mapping = SCOPE_FUNCTIONS) -> List[ResolvedPermission]:
    """Flatten the user's roles, in order, into resolved permissions."""
    return [
        resolve_permission(declaration, user, functions)
        for role in user.roles
        for declaration in role.permissions
    ]


def build_ability(user: User, functions: Mapping = SCOPE_FUNCTIONS,
                  aliases: Optional[Mapping] = None) -> Ability:
    """Build a fresh Ability for *user* from its roles."""
    permissions = expand_permissions(user, functions)
    logger.debug(
        "Built %d rules for user %s (roles: %s)",
        len(permissions), user.id, ", ".join(role.name for role in user.roles),
    )
    return Ability(permissions, aliases=aliases)


def decorate_user(user: User) -> None:
    """Attach a fresh ability to *user* in place (per request, server side)."""
    user.ability = build_ability(user)


def decorate_user_immutable(user: User) -> User:
    """Return a decorated copy of *user*; the original is left untouched."""
    decorated = user.copy()
    decorated.ability = build_ability(decorated)
    return decorated
