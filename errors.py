from typing import Optional


class CoordinatorError(Exception):
    """Base class for failures reported back to the requesting connection."""

    reason = "InvalidInput"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(detail or self.reason)


class RoomNotFound(CoordinatorError):
    reason = "RoomNotFound"


class RoomFull(CoordinatorError):
    reason = "RoomFull"


class WrongPassword(CoordinatorError):
    reason = "WrongPassword"


class InvalidInput(CoordinatorError):
    reason = "InvalidInput"


class Unauthorized(CoordinatorError):
    # Never sent to clients; kick attempts by non-owners are dropped.
    reason = "Unauthorized"
