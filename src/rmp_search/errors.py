"""Error taxonomy shared by the stores and the HTTP layer."""


class RMPSearchError(Exception):
    status_code = 500
    public_message = None

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    @property
    def detail(self) -> str:
        return self.public_message or self.message


class NotFound(RMPSearchError):
    status_code = 404


class BadInput(RMPSearchError):
    status_code = 400


class BackendUnavailable(RMPSearchError):
    """Data file unreadable or database unreachable.

    `message` keeps the internal reason for logs; `detail` is what clients see.
    """

    status_code = 500
    public_message = "data backend unavailable"
