from fastapi import Request
from fastapi.responses import JSONResponse

MISSING_REQUEST_ID = "-"


def get_request_id(request: Request) -> str:
    return str(getattr(request.state, "request_id", None) or MISSING_REQUEST_ID)


def _envelope(request: Request, ok: bool, **body) -> dict:
    return {"ok": ok, **body, "request_id": get_request_id(request)}


def success_response_payload(request: Request, *, data, meta: dict | None = None) -> dict:
    return _envelope(request, True, data=data, meta=meta or {})


def error_response_payload(request: Request, *, code: str, message: str, details=None) -> dict:
    return _envelope(
        request,
        False,
        error={"code": code, "message": message, "details": details},
    )


def error_json_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details=None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Error envelope as a ready response, for middleware and exception handlers."""
    return JSONResponse(
        status_code=status_code,
        content=error_response_payload(request, code=code, message=message, details=details),
        headers=headers,
    )
