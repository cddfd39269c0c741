from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, status

from app.core.config import settings
from app.core.enums import Game
from app.core.security import get_current_user
from app.models.user import User
from app.schemas.common import APIResponse
from app.schemas.gacha import ImportStarted, UrlImportRequest
from app.schemas.progress import ImportProgress
from app.services.export_file import ExportFileSource
from app.services.hoyo_api import HoyoApiSource
from app.services.importer import ImportJobRunner, get_import_runner
from app.services.progress import ProgressStore, get_progress_store

router = APIRouter(prefix="/imports", tags=["imports"])

JSON_CONTENT_TYPES = frozenset({"application/json", "text/json"})


@router.post("/url")
async def import_from_url(
    payload: UrlImportRequest,
    user: Annotated[User, Depends(get_current_user)],
    runner: Annotated[ImportJobRunner, Depends(get_import_runner)],
) -> APIResponse[ImportStarted]:
    """Start importing the user's pull history from the game's gacha log API."""
    # An unusable URL raises InvalidSourceError, rendered as a 400
    source = HoyoApiSource(payload.game, payload.url)

    upload_id = runner.submit(user_id=user.id, source=source)
    return APIResponse(data=ImportStarted(upload_id=upload_id), message="Import started")


@router.post("/file")
async def import_from_file(
    file: UploadFile,
    user: Annotated[User, Depends(get_current_user)],
    runner: Annotated[ImportJobRunner, Depends(get_import_runner)],
    game: Annotated[Game, Query(description="Game the export belongs to")] = Game.GENSHIN,
) -> APIResponse[ImportStarted]:
    """Start importing a wish tracker JSON export."""
    if file.content_type not in JSON_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Only JSON files are allowed")

    content = await file.read(settings.max_upload_bytes + 1)
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File is larger than {settings.max_upload_bytes} bytes",
        )

    # Unknown export layouts raise UnsupportedExportError, rendered as a 400
    source = ExportFileSource(game, content)

    upload_id = runner.submit(user_id=user.id, source=source)
    return APIResponse(
        data=ImportStarted(upload_id=upload_id),
        message=f"Import of {source.total} pulls started",
    )


@router.get("/progress/{upload_id}")
async def get_import_progress(
    upload_id: str,
    progress: Annotated[ProgressStore, Depends(get_progress_store)],
    _user: Annotated[User, Depends(get_current_user)],
) -> APIResponse[ImportProgress]:
    snapshot = progress.get(upload_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Import not found or expired")
    return APIResponse(data=snapshot)


@router.delete("/{upload_id}")
async def cancel_import(
    upload_id: str,
    user: Annotated[User, Depends(get_current_user)],
    runner: Annotated[ImportJobRunner, Depends(get_import_runner)],
) -> APIResponse[None]:
    if not runner.cancel(upload_id, user_id=user.id):
        raise HTTPException(status_code=404, detail="No running import with this id")
    return APIResponse(message="Import cancelled")
