# core/responses.py
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def send_response(status_code: int, message: str, data: Any = None, success: bool = True) -> JSONResponse:
    """Standard success envelope."""
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({
            "success": success,
            "message": message,
            "data": data,
            "timestamp": _timestamp(),
        }),
    )


def send_error(status_code: int, message: str, errors: Optional[Any] = None) -> JSONResponse:
    """Standard error envelope."""
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({
            "success": False,
            "message": message,
            "errors": errors,
            "timestamp": _timestamp(),
        }),
    )
