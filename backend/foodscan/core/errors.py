import re
from typing import Any, Dict, Optional

from fastapi import HTTPException


def redact_key(s: str) -> str:
    """
    Redact 'key=...' query params and bearer tokens so we never leak API keys in logs/responses.
    """
    if not s:
        return s
    s = re.sub(r"(key=)([^&\s]+)", r"\1REDACTED", s)
    return re.sub(r"(Bearer\s+)(\S+)", r"\1REDACTED", s)


class FoodScanError(Exception):
    status_code = 500
    kind = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        upstream_status: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.upstream_status = upstream_status
        self.detail = redact_key(detail)[:2000] if detail else detail
        self.stages: Optional[Dict[str, str]] = None

    def to_detail(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.upstream_status is not None:
            out["upstream_status"] = self.upstream_status
        if self.detail:
            out["detail"] = self.detail
        if self.stages:
            out["stages"] = self.stages
        return out


class InputError(FoodScanError):
    status_code = 400
    kind = "invalid_input"


class NotFoundError(FoodScanError):
    status_code = 404
    kind = "not_found"


class ProviderUnavailable(FoodScanError):
    """Provider misconfigured, unreachable or timed out."""
    status_code = 503
    kind = "provider_unavailable"


class ProviderFailure(FoodScanError):
    """Provider answered, but with an error status or an unusable payload."""
    status_code = 500
    kind = "provider_failure"


def to_http_exception(e: FoodScanError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_detail())
