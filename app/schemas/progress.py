from pydantic import BaseModel, Field

from app.core.enums import ImportState


class ImportProgress(BaseModel):
    """Pollable snapshot of a running or recently finished import job."""

    upload_id: str
    progress_percent: float = Field(default=0.0, ge=0, le=100)
    status_message: str = "Waiting to start"
    state: ImportState = ImportState.PENDING
    completed: bool = False
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    total: int = 0
    current_item: str | None = None
