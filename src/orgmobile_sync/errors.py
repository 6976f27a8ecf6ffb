"""Exception hierarchy for orgmobile-sync.

Two families exist:

- **Setup errors** abort a whole phase before anything is mutated and
  propagate to whoever invoked ``push``/``pull``/``apply``.
- **Request errors** are raised while resolving or executing a single
  change request.  The apply engine catches them per request, writes the
  message inline into the inbox, and counts them; they never abort a pass.
"""

from __future__ import annotations


class OrgMobileError(Exception):
    """Base exception for orgmobile-sync."""


class SetupError(OrgMobileError):
    """Raised when canonical, staging or inbox locations are unusable."""


class HookError(SetupError):
    """Raised when a configured pre/post phase hook command fails."""

    def __init__(self, hook: str, command: str, returncode: int):
        self.hook = hook
        self.command = command
        self.returncode = returncode
        super().__init__(
            f"Hook {hook} failed (exit {returncode}): {command}"
        )


class RequestError(OrgMobileError):
    """Base for failures isolated to one change request."""


class ResolutionError(RequestError):
    """Raised when a request's target reference cannot be resolved.

    Attributes:
        kind: ``"not-found"``, ``"not-unique"``, ``"unresolved-id"`` or
            ``"bad-link"``.
    """

    def __init__(self, kind: str, message: str):
        self.kind = kind
        super().__init__(message)


class UnknownActionError(RequestError):
    """Raised when a flag entry names an action with no registered handler."""

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"BAD FLAG: unknown action '{action}'")


class ConflictError(RequestError):
    """Raised when a field edit's old-value snapshot is stale."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class ActionExecutionError(RequestError):
    """Raised when a handler cannot execute against its target."""
