"""
Typed failures raised by the response sanitizer.
Route handlers turn these into JSON error bodies via `to_dict()`.
"""

from typing import Any, Dict, Optional


class SanitizerError(Exception):
    """Base class for sanitizer failures. Carries a short diagnostic code."""

    code = "sanitizer_error"

    def __init__(self, message: str, code: Optional[str] = None, raw: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.raw = raw

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if include_raw and self.raw is not None:
            body["raw"] = self.raw
        return body


class ParseError(SanitizerError):
    """Model output is empty or not valid JSON after fence-stripping."""

    code = "invalid_json"


class ValidationError(SanitizerError):
    """A required field is missing, has the wrong type, or is out of bounds."""

    code = "invalid_record"

    def __init__(self, message: str, code: Optional[str] = None, field: Optional[str] = None, raw: Optional[str] = None) -> None:
        super().__init__(message, code=code, raw=raw)
        self.field = field

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        body = super().to_dict(include_raw=include_raw)
        if self.field:
            body["field"] = self.field
        return body
