"""
Error types raised while building or querying an Ability.
"""


class AbilityError(ValueError):
    """Base class for permission configuration and evaluation failures."""


class UnknownScopeError(AbilityError):
    """A role declares a scope name that is not in the catalog."""

    def __init__(self, name: str):
        super().__init__(f'No scope defined for "{name}"')
        self.name = name


class UnsupportedSubjectError(AbilityError):
    """A relational scope was checked against a subject type it cannot handle."""

    def __init__(self, subject_type: str):
        super().__init__(f'unsupported subject "{subject_type}"')
        self.subject_type = subject_type


class UndefinedVariableError(AbilityError):
    """A conditions template references a path that does not resolve."""

    def __init__(self, path: str):
        super().__init__(f"Variable {path} is not defined")
        self.path = path


class ForbiddenError(AbilityError):
    """Raised by Ability.ensure_can when the action is not allowed."""

    def __init__(self, action: str, subject_type: str, reason=None):
        message = reason or f'Cannot execute "{action}" on "{subject_type}"'
        super().__init__(message)
        self.action = action
        self.subject_type = subject_type
