"""Exception hierarchy shared by the store, the mutation core and the screens."""


class UniLinkError(Exception):
    """Base class for every error raised by unilink."""


class InputValidationError(UniLinkError):
    """Input rejected locally, before any remote call."""


class ConflictError(UniLinkError):
    """The write collides with an existing record (duplicate application, connection, like)."""


class RemoteCallError(UniLinkError):
    """Network or service failure talking to the remote store."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class NoSessionError(UniLinkError):
    """The operation needs a signed-in user."""


class AuthenticationError(UniLinkError):
    """Sign-in or sign-up rejected by the auth provider."""
