"""Result values returned by the external service clients."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class FailureKind(str, Enum):
    CONFIGURATION = "configuration"  # missing credentials, not retryable
    TRANSPORT = "transport"
    MALFORMED_RESPONSE = "malformed_response"
    EMPTY_RESULT = "empty_result"
    VALIDATION = "validation"  # rejected locally before any network call


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Success with a value, or failure with a kind and a readable message."""

    value: Optional[T] = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, value: T) -> "ServiceResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: FailureKind, error: str) -> "ServiceResult[T]":
        return cls(error=error, kind=kind)

    @property
    def retryable(self) -> bool:
        return self.kind in (
            FailureKind.TRANSPORT,
            FailureKind.MALFORMED_RESPONSE,
            FailureKind.EMPTY_RESULT,
        )
