"""
Error taxonomy shared by the cookie codec, the guest store and the state machine.
"""


class SessionError(Exception):
    """Base class for failures to recover a guest identity from the request."""


class NoSessionPresent(SessionError):
    """No session cookie was sent. Treated as a first visit."""


class InvalidSession(SessionError):
    """
    A session cookie was sent but cannot be trusted: it failed authentication,
    carries the invalid-session marker, or names a code that does not exist.
    """


class MalformedInput(Exception):
    """User input failed a shape or validation check."""

    def __init__(self, field: str, value: str | None = None):
        self.field = field
        self.value = value
        super().__init__(f"{field} is invalid")


class StoreError(Exception):
    """Base class for guest store failures."""


class StoreUnavailableError(StoreError):
    """A read from the store failed. Fatal for the current request."""


class StoreWriteError(StoreError):
    """A write to the store failed. Logged, never fatal."""


class GuestNotFoundError(StoreWriteError):
    """A mutation affected zero rows: the code was never issued."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"no guest found with code {code}")
