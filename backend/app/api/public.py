from fastapi import APIRouter, Request

from app.core.api_response import success_response_payload
from app.core.permissions import permissions_config_payload

router = APIRouter(prefix="/api/public", tags=["public"])


@router.get("/permissions")
def permissions_config(request: Request):
    return success_response_payload(request, data=permissions_config_payload())
