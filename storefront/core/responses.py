"""
Storefront — Uniform JSON envelope
    success: {"success": true, "data": ..., "message": ...}
    failure: {"success": false, "error": ..., "errors": {...}}
"""
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel


def _encode(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, list):
        return [_encode(d) for d in data]
    if isinstance(data, dict):
        return {k: _encode(v) for k, v in data.items()}
    return jsonable_encoder(data)


def success_response(
    data: Any = None,
    message: str | None = None,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"success": True, "data": _encode(data)}
    if message:
        content["message"] = message
    return JSONResponse(content=content, status_code=status_code, headers=headers)


def error_response(
    message: str,
    status_code: int = 400,
    errors: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": message}
    if errors:
        content["errors"] = jsonable_encoder(errors)
    return JSONResponse(content=content, status_code=status_code, headers=headers)
