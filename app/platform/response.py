from typing import Any, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel


def api_response(
    *,
    data: Optional[Any] = None,
    message: str = "Operation successful",
    status_code: int = status.HTTP_200_OK,
) -> JSONResponse:
    """
    Envelope shared by every endpoint:
    {status_code, status, message, data}

    `status` is "success" below 400 and "error" otherwise. Pydantic models
    are dumped in JSON mode so enums and datetimes serialize consistently.
    """
    status_str = "success" if status_code < 400 else "error"
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    data = jsonable_encoder(data) if data is not None else {}

    return JSONResponse(
        status_code=status_code,
        content={
            "status_code": status_code,
            "status": status_str,
            "message": message,
            "data": data,
        },
    )


def error_response(
    message: str,
    status_code: int,
    reason: Optional[str] = None,
    **extra: Any,
) -> JSONResponse:
    """Error envelope with an optional machine readable `reason` in data."""
    data = dict(extra)
    if reason:
        data["reason"] = reason
    return api_response(data=data, message=message, status_code=status_code)
