"""
Error taxonomy for action submission.
All errors subclass ValueError so callers that catch the reducer's ValueError keep working.
"""


class ActionError(ValueError):
    """Base class. `code` is the stable identifier sent to clients."""
    code = "action_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "error_code": self.code}


class NotFound(ActionError):
    code = "not_found"


class NotActive(ActionError):
    code = "not_active"


class WrongTurn(ActionError):
    code = "wrong_turn"


class IllegalAction(ActionError):
    code = "illegal_action"


class ConcurrencyConflict(ActionError):
    """Another submission committed first. Safe to retry the whole submit sequence."""
    code = "concurrency_conflict"
    retryable = True


class PersistenceError(ActionError):
    """The store rejected the write. Nothing was persisted."""
    code = "persistence_error"
