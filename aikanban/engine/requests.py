"""Request validity tokens for AI calls tied to a view.

A view (an insights panel, an edit dialog) opens a RequestScope and issues a
token per AI request. When the view closes, or a newer request supersedes the
old one, the token goes stale and its result is discarded instead of being
merged into state.
"""

import logging

logger = logging.getLogger(__name__)


class RequestToken:
    """Handle for one in-flight request."""

    def __init__(self, scope: "RequestScope", serial: int):
        self._scope = scope
        self.serial = serial

    @property
    def valid(self) -> bool:
        return self._scope.is_current(self)


class RequestScope:
    """Issues request tokens for a single consumer and invalidates them on close."""

    def __init__(self, name: str = "view"):
        self.name = name
        self._serial = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def issue(self) -> RequestToken:
        """Start a new request; any earlier token from this scope becomes stale."""
        self._serial += 1
        return RequestToken(self, self._serial)

    def is_current(self, token: RequestToken) -> bool:
        return not self._closed and token.serial == self._serial

    def close(self) -> None:
        if not self._closed:
            logger.debug(f"Closed {self.name} request scope at serial {self._serial}")
        self._closed = True
