# fileshare/dependencies.py
from typing import Optional

from fastapi import Depends, Query, Request

from fileshare.core.settings import Settings
from fileshare.services.fileshare_service import FileShareService
from fileshare.services.ids import sanitize_id


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_fileshare_service(request: Request) -> FileShareService:
    return request.app.state.fileshare_service


def sweep_expired(
    id: Optional[str] = Query(None, include_in_schema=False),
    settings: Settings = Depends(get_app_settings),
    service: FileShareService = Depends(get_fileshare_service),
) -> None:
    """
    Opportunistische opruimronde vóór elke request.
    Het opgevraagde id wordt overgeslagen: dat handelt de read-path zelf af
    (410 + opruimen), zodat een verlopen link als "expired" gemeld wordt.
    """
    if not settings.SWEEP_ON_REQUEST:
        return
    requested = sanitize_id(id)
    service.sweep(exclude={requested} if requested else ())
