from typing import Optional

from fastapi import Header, Request

from app.config import Settings
from app.core.security import authenticate_request
from app.database.session import get_database, get_db
from app.services.adjustment_service import StockAdjuster


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_adjuster(request: Request) -> StockAdjuster:
    return request.app.state.adjuster


def require_auth(
    request: Request,
    api_key_alt: Optional[str] = Header(None, alias="api-key"),
    authorization: Optional[str] = Header(None),
):
    settings = get_app_settings(request)
    api_key_value = request.headers.get(settings.API_KEY_HEADER) or api_key_alt
    return authenticate_request(
        settings,
        api_key=api_key_value,
        authorization=authorization,
    )


__all__ = ["get_adjuster", "get_app_settings", "get_database", "get_db", "require_auth"]
