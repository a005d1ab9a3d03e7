"""Domain exceptions raised by services and translated at the HTTP boundary.

Every exception carries a short, client-safe `message` and the HTTP
`status_code` the API layer responds with. Handlers in `skillnet.main`
render them as `{"message": ...}`.
"""


class SkillNetError(Exception):
    """Base class for all expected, client-facing failures."""
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(SkillNetError):
    """Malformed or rejected input. The message is shown verbatim."""
    status_code = 400


class InvalidCredentials(SkillNetError):
    """Login or token failure.

    The message never tells the caller whether the email or the password
    was wrong.
    """
    status_code = 401

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class AuthenticationRequired(SkillNetError):
    """Missing, malformed or expired bearer token on a protected route."""
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class Forbidden(SkillNetError):
    """The caller is authenticated but does not own the target entity."""
    status_code = 403


class NotFound(SkillNetError):
    status_code = 404


class DuplicateAccount(SkillNetError):
    status_code = 409

    def __init__(self, message: str = "User with this email already exists"):
        super().__init__(message)


class NotImplementedCapability(SkillNetError):
    """A capability switched off or not provided by this deployment."""
    status_code = 400
