"""SiriusXM HLS gateway."""

__version__ = '1.0.0'

from .errors import (AuthenticationError, DecodeError, NotFoundError,
                     RequestTimeoutError, SessionExpiredError, SiriusXMError,
                     UpstreamRequestError)
from .gateway import Gateway
