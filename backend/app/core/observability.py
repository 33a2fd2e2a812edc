import logging

from fastapi import Request

from app.core.api_response import get_request_id


def format_fields(**fields) -> str:
    """Render ``key=value`` pairs in call order, dropping ``None`` values."""
    return " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)


def log_business_event(
    logger: logging.Logger,
    request: Request,
    *,
    event: str,
    level: int = logging.INFO,
    **fields,
) -> None:
    logger.log(
        level,
        "business_event %s",
        format_fields(event=event, request_id=get_request_id(request), **fields),
    )


def log_access_refusal(
    logger: logging.Logger,
    request: Request,
    *,
    event: str,
    module: str | None,
    action: str | None,
    level: int = logging.WARNING,
) -> None:
    logger.log(
        level,
        "%s %s",
        event,
        format_fields(
            request_id=get_request_id(request),
            method=request.method,
            path=request.url.path,
            module=module,
            action=action,
        ),
    )
