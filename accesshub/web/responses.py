"""JSON responses in the `{message, r, data}` envelope."""

from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, PlainTextResponse

from accesshub.core.responses import ResponseCode, build_envelope, http_status_for


def respond(message: str, data: Any = None, code: int = ResponseCode.SUCCESS) -> JSONResponse:
    return JSONResponse(
        status_code=http_status_for(code),
        content=jsonable_encoder(build_envelope(message, code, data)),
    )


def created(message: str, data: Any = None) -> JSONResponse:
    return respond(message, data, ResponseCode.CREATED)


def csv_attachment(content: str, filename: str) -> PlainTextResponse:
    return PlainTextResponse(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
