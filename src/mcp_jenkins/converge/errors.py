"""Error taxonomy for convergence passes.

Every failure of a pass is one of these and ends up on
``ReconcileResult.error``. Absence of a remote object is not an error.
"""
from typing import Optional


class ConvergeError(Exception):
    """Base class for all convergence failures."""

    category = "error"

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        name: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.name = name

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "message": self.message,
            "kind": self.kind,
            "name": self.name,
        }


class InvalidConfig(ConvergeError):
    """Desired state is unusable (bad attribute, missing config payload)."""

    category = "invalid_config"


class ParseError(InvalidConfig):
    """Error parsing a resource declaration from the manifest."""

    category = "parse_error"


class ProbeFailed(ConvergeError):
    """Current remote state could not be determined."""

    category = "probe_failed"


class UnknownAction(ConvergeError):
    """An intent has no command template for the resource kind."""

    category = "unknown_action"


class ActionFailed(ConvergeError):
    """The dispatched command failed or could not be executed."""

    category = "action_failed"

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        name: Optional[str] = None,
        action: Optional[str] = None,
        command: Optional[str] = None,
        output: str = "",
    ):
        super().__init__(message, kind=kind, name=name)
        self.action = action
        self.command = command
        self.output = output

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "action": self.action,
            "command": self.command,
            "output": self.output,
        })
        return data
