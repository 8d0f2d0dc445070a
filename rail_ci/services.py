"""
Result object returned by services.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ServiceResponse:
    status: str
    message: Optional[str] = None
    payload: Any = None
    http_status: Optional[int] = None
    reason: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, message: Optional[str] = None, payload: Any = None, http_status: int = 200):
        return cls(status="success", message=message, payload=payload, http_status=http_status)

    @classmethod
    def error(
        cls,
        message: str,
        payload: Any = None,
        http_status: Optional[int] = None,
        reason: Optional[str] = None,
    ):
        return cls(
            status="error",
            message=message,
            payload=payload,
            http_status=http_status,
            reason=reason,
        )

    @property
    def is_success(self) -> bool:
        return self.status == "success"

    @property
    def is_error(self) -> bool:
        return self.status == "error"

    @property
    def errors(self) -> list[str]:
        return [self.message] if self.is_error and self.message else []
