"""Exceptions raised by the pub-sub engine and its channels."""

from typing import Any


class PubSubError(Exception):
    """Base class for all pub-sub errors."""


class NotFoundError(PubSubError, KeyError):
    """Raised when releasing a subscription id that is not registered."""

    def __init__(self, sub_id: Any) -> None:
        self.sub_id = sub_id
        super().__init__(f'There is no subscription of id "{sub_id}"')

    def __str__(self) -> str:
        # KeyError would repr() the message
        return self.args[0]


class TransportError(PubSubError):
    """Raised when the underlying channel fails to publish or subscribe."""


class DeliveredError(PubSubError):
    """An application error published on a trigger and delivered as data."""

    def __init__(self, message: str, error_type: str = "Exception") -> None:
        super().__init__(message)
        self.error_type = error_type

    def __repr__(self) -> str:
        return f"DeliveredError(type={self.error_type!r}, message={str(self)!r})"
