"""
Domain errors raised by the livechat service layer.
"""

from typing import Any, Optional


class LivechatError(Exception):
    """A business rule rejected a livechat operation.

    ``error`` is a stable machine-readable code (e.g.
    ``error-department-not-found``); ``reason`` is the human readable
    message returned to API clients.
    """

    def __init__(self, error: str, reason: Optional[str] = None, details: Optional[Any] = None) -> None:
        self.error = error
        self.reason = reason or error
        self.details = details
        super().__init__(self.reason)

    def __str__(self) -> str:
        return f"{self.reason} [{self.error}]"
