"""Messages returned by the discovery service as HTTP responses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

HTTP_OK = 200


@dataclass(frozen=True)
class HTTPMessage:
    """A message with its HTTP status code."""

    message: str
    code: int

    def __str__(self) -> str:
        return f"status code: {self.code}. message: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HTTPMessage":
        return cls(message=data.get("message", ""), code=data.get("code", 0))


MSG_ENTRY_SET = HTTPMessage(code=HTTP_OK, message="wrote a new entry")
MSG_ENTRY_UPDATED = HTTPMessage(code=HTTP_OK, message="wrote new entry iteration")