class BattleError(Exception):
    """Base class for errors surfaced to API callers with an HTTP status."""

    status_code = 400
    default_message = "Battle request failed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(BattleError):
    status_code = 404
    default_message = "Battle not found"


class InvalidToken(NotFound):
    default_message = "Battle not found or join token is invalid"


class PermissionDenied(BattleError):
    status_code = 403
    default_message = "You are not allowed to perform this action"


class CreatorOnly(PermissionDenied):
    def __init__(self, action="perform this action"):
        super().__init__(f"Only the battle creator can {action}")


class InvalidState(BattleError):
    status_code = 400
    default_message = "Action not allowed in the current battle state"


class AlreadyStarted(InvalidState):
    default_message = "Battle already started"


class NotStarted(InvalidState):
    def __init__(self, resource="This resource"):
        super().__init__(f"{resource} is only available after the battle starts")


class NotInProgress(InvalidState):
    def __init__(self, action="This action"):
        super().__init__(f"{action} can only be performed during an active battle")


class AlreadyCompleted(InvalidState):
    default_message = "Battle is already completed"


class Conflict(BattleError):
    status_code = 409
    default_message = "Conflicting operation in progress"


class StartInProgress(Conflict):
    default_message = "Battle is starting, please wait"


class ValidationError(BattleError):
    status_code = 400
    default_message = "Invalid battle details"


class UpstreamUnavailable(BattleError):
    """Codeforces is unreachable or rate limited; the call may be retried."""

    status_code = 503
    default_message = "Codeforces is temporarily unavailable"


class UpstreamError(BattleError):
    """Codeforces rejected the request; retrying will not help."""

    status_code = 502
    default_message = "Codeforces API error"


class InsufficientResources(BattleError):
    status_code = 422
    default_message = "Not enough resources to satisfy the request"


class InsufficientProblems(InsufficientResources):
    def __init__(self, min_rating, max_rating, found=None, requested=None):
        message = f"Not enough problems found in the specified rating range ({min_rating}-{max_rating})."
        if found is not None and requested is not None:
            message = f"{message} Found {found}, need {requested}."
        super().__init__(message)
