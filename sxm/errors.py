class SiriusXMError(Exception):
    pass


class AuthenticationError(SiriusXMError):
    """Login or session resume was rejected."""


class SessionExpiredError(SiriusXMError):
    """Upstream kept reporting an expired session after every retry."""


class UpstreamRequestError(SiriusXMError):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class DecodeError(UpstreamRequestError):
    pass


class NotFoundError(SiriusXMError):
    pass


class RequestTimeoutError(SiriusXMError):
    """The client request ran past its handling deadline."""
