"""Uniform result envelope for services that report instead of raising."""

from typing import Any

from pydantic import BaseModel


class ServiceResult(BaseModel):
    """{success, data, error, message} shape returned to API callers."""

    success: bool
    data: Any = None
    error: str | None = None
    message: str | None = None

    @classmethod
    def ok(cls, data: Any = None, message: str | None = None) -> "ServiceResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "ServiceResult":
        return cls(success=False, error=error, data=data)
