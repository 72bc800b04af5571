"""Result wrapper returned by every public client operation."""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .exceptions import HuobiError

T = TypeVar('T')


@dataclass(frozen=True)
class CallResult(Generic[T]):
    """Outcome of a call: either data or an error, never both.

    Attributes:
        data: Payload of a successful call
        error: Error describing why the call failed
    """
    data: Optional[T] = None
    error: Optional[HuobiError] = None

    @property
    def success(self) -> bool:
        """True when the call completed without an error."""
        return self.error is None

    def __bool__(self) -> bool:
        return self.success

    def unwrap(self) -> T:
        """Return the data or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.data

    @classmethod
    def ok(cls, data: T) -> 'CallResult[T]':
        return cls(data=data)

    @classmethod
    def fail(cls, error: HuobiError) -> 'CallResult[T]':
        return cls(error=error)
