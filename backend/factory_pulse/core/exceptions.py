from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from factory_pulse.domain.prerequisites import PrerequisiteResult


class FactoryPulseError(Exception):
    """Base exception for the Factory Pulse application."""

    pass


class ConfigurationError(FactoryPulseError, LookupError):
    """Raised when stage configuration is missing or inconsistent.

    Not retryable: an administrator has to fix the workflow stages first.
    """

    pass


class ValidationError(FactoryPulseError):
    """Raised when required prerequisites for a stage transition are unmet."""

    def __init__(self, message: str, result: PrerequisiteResult | None = None):
        self.result = result
        super().__init__(message)


class BypassNotPermittedError(FactoryPulseError):
    """Raised when an actor requests a bypass their role does not allow."""

    def __init__(self, user_id: str, role: str | None):
        self.user_id = user_id
        self.role = role
        super().__init__(f"User '{user_id}' with role '{role or 'none'}' may not bypass stage validation")


class AuthenticationError(FactoryPulseError):
    """Raised when no authenticated actor is available."""

    pass


class PersistenceError(FactoryPulseError):
    """Raised when the workflow store rejects a read or write."""

    pass


class StaleTransitionError(PersistenceError):
    """Raised when the project moved to another stage since validation."""

    def __init__(self, project_id: str, expected_stage_id: str | None):
        self.project_id = project_id
        self.expected_stage_id = expected_stage_id
        super().__init__(
            f"Project '{project_id}' is no longer at stage '{expected_stage_id or 'none'}'"
        )


class NotFoundError(FactoryPulseError, LookupError):
    """Raised when a project or stage referenced by a request does not exist."""

    pass
