import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.core.db import get_session
from app.core.enums import Game, ImportState
from app.core.exceptions import BannerFetchError, FatalImportError, RecordRejectedError
from app.models.gacha_pull import GachaPull
from app.schemas.gacha import RawPull
from app.schemas.progress import ImportProgress
from app.services.banner import BannerResolver, get_banner_info
from app.services.duplicate import DuplicateDetector
from app.services.fetcher import PullSource
from app.services.pity import PityCalculator
from app.services.progress import ProgressStore, progress_store
from app.services.pull_store import PullStore
from app.services.rarity import RarityResolver
from app.services.user_stats import UserStatsService
from app.utils.misc import generate_upload_id, get_utc_now
from app.utils.normalize import normalize_item_name

MAX_PERCENT_BEFORE_COMPLETION = 99.0
FETCH_SHARE = 0.5
"""Part of a banner's progress share spent fetching, the rest goes to processing"""

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class ImportOrchestrator:
    """Runs one import job: fetch every banner of a source, then persist its new pulls.

    A job goes PENDING -> FETCHING/PROCESSING per banner -> COMPLETED or FAILED.
    Nothing raised while importing escapes ``run``, every outcome ends in a
    completed progress snapshot.
    """

    def __init__(  # noqa: PLR0913, PLR0917
        self,
        upload_id: str,
        user_id: int,
        source: PullSource,
        store: PullStore,
        progress: ProgressStore,
        *,
        stats: UserStatsService | None = None,
        duplicate_buffer: timedelta | None = None,
        retention_seconds: float | None = None,
        clock: Callable[[], datetime] = get_utc_now,
    ) -> None:
        self.upload_id = upload_id
        self.user_id = user_id
        self.source = source
        self.game: Game = source.game
        self.store = store
        self.progress = progress
        self.stats = stats
        self.retention_seconds = (
            settings.progress_retention_seconds if retention_seconds is None else retention_seconds
        )
        self._clock = clock

        buffer = duplicate_buffer
        if buffer is None:
            buffer = timedelta(seconds=settings.duplicate_buffer_seconds)
        self.duplicates = DuplicateDetector(store, buffer=buffer)
        self.rarity = RarityResolver(store)
        self.banners = BannerResolver(store)
        self.pity = PityCalculator(store)

        self.imported = 0
        self.skipped = 0
        self.errors = 0
        self.total = 0
        self._percent = 0.0

    def _report(self, *, percent: float | None = None, **changes: object) -> None:
        if percent is not None:
            # Never move backwards, never claim 100 before the job is done
            self._percent = max(self._percent, min(percent, MAX_PERCENT_BEFORE_COMPLETION))

        snapshot = self.progress.update(
            self.upload_id,
            progress_percent=round(self._percent, 2),
            imported=self.imported,
            skipped=self.skipped,
            errors=self.errors,
            total=self.total,
            **changes,
        )
        if snapshot is None:
            self.progress.set(
                self.upload_id,
                ImportProgress(
                    upload_id=self.upload_id,
                    progress_percent=round(self._percent, 2),
                    imported=self.imported,
                    skipped=self.skipped,
                    errors=self.errors,
                    total=self.total,
                    **changes,  # pyright: ignore[reportArgumentType]
                ),
            )

    def _audit(self, action: str, raw: RawPull, **extra: object) -> None:
        logger.bind(
            audit=True,
            action=action,
            upload_id=self.upload_id,
            user_id=self.user_id,
            game=self.game.value,
            banner_id=raw.banner_code,
            external_id=raw.external_id,
            item_name=raw.item_name,
            **extra,
        ).info(f"{action} {raw.item_name!r} at {raw.time}")

    async def run(self) -> ImportProgress:
        session_start = self._clock()
        logger.info(
            f"Import {self.upload_id} started for user {self.user_id} ({self.game}) "
            f"at {session_start.isoformat()}"
        )
        self._report(state=ImportState.PENDING, status_message="Starting import", completed=False)

        try:
            async with self.source:
                banner_ids = list(self.source.banner_ids())
                for index, banner_id in enumerate(banner_ids):
                    try:
                        await self._import_banner(index, len(banner_ids), banner_id, session_start)
                    except BannerFetchError as e:
                        self.errors += 1
                        logger.warning(f"Import {self.upload_id}: {e}")
                        self._report(status_message=str(e))
            await self._refresh_stats()
        except FatalImportError as e:
            self.errors += 1
            logger.error(f"Import {self.upload_id} stopped: {e}")
            return self._finish(ImportState.FAILED, str(e))
        except asyncio.CancelledError:
            self._finish(ImportState.FAILED, "Import cancelled")
            raise
        except Exception as e:
            self.errors += 1
            logger.exception(f"Import {self.upload_id} crashed")
            return self._finish(ImportState.FAILED, f"Import failed: {e}")

        message = (
            f"Imported {self.imported} pulls, skipped {self.skipped}, {self.errors} errors"
        )
        return self._finish(ImportState.COMPLETED, message)

    async def _import_banner(
        self, index: int, banner_count: int, banner_id: str, session_start: datetime
    ) -> None:
        share = 100 / banner_count
        base = index * share
        info = get_banner_info(self.game, banner_id)
        label = info.name if info else banner_id

        self._report(
            percent=base,
            state=ImportState.FETCHING,
            status_message=f"Fetching {label}",
            current_item=None,
        )

        async def on_page(page: int, fetched: int) -> None:
            fraction = 1 - 0.5**page
            self._report(
                percent=base + share * FETCH_SHARE * fraction,
                status_message=f"Fetched page {page} of {label} ({fetched} pulls)",
            )

        pulls = await self.source.fetch_banner(banner_id, on_page)
        self.total += len(pulls)
        self._report(
            percent=base + share * FETCH_SHARE,
            state=ImportState.PROCESSING,
            status_message=f"Processing {len(pulls)} pulls from {label}",
        )

        for position, raw in enumerate(pulls, start=1):
            await self._import_pull(raw, session_start)
            done = FETCH_SHARE + (1 - FETCH_SHARE) * position / len(pulls)
            self._report(percent=base + share * done, current_item=raw.item_name)

        logger.info(
            f"Import {self.upload_id}: {label} done ({self.imported} imported, "
            f"{self.skipped} skipped, {self.errors} errors so far)"
        )

    @staticmethod
    def _validate(raw: RawPull) -> tuple[str, datetime]:
        name = normalize_item_name(raw.item_name)
        if not name:
            msg = "empty item name"
            raise RecordRejectedError(msg)
        if raw.time is None:
            msg = "missing or invalid time"
            raise RecordRejectedError(msg)
        return name, raw.time

    async def _import_pull(self, raw: RawPull, session_start: datetime) -> None:
        try:
            name, pulled_at = self._validate(raw)
        except RecordRejectedError as e:
            self.errors += 1
            logger.warning(f"Rejecting pull {raw.external_id or raw.item_name!r}: {e}")
            self._audit("REJECTED", raw, reason=str(e))
            return

        try:
            if await self.duplicates.is_duplicate(
                user_id=self.user_id,
                normalized_item_name=name,
                banner_id=raw.banner_code,
                game=self.game,
                time=pulled_at,
                session_start=session_start,
            ):
                self.skipped += 1
                self._audit("SKIP_DUPLICATE", raw)
                return

            rank_type = await self.rarity.resolve(raw.item_name, self.game, raw.rank_hint)
            banner = await self.banners.resolve(raw.banner_code, self.game)
            pity_count = await self.pity.compute(
                user_id=self.user_id, banner_id=banner.banner_id, game=self.game, before=pulled_at
            )
            await self.store.create_pull(
                GachaPull(
                    external_id=raw.external_id,
                    user_id=self.user_id,
                    banner_id=banner.banner_id,
                    game=self.game,
                    item_name=name,
                    item_type=raw.item_type,
                    rank_type=rank_type,
                    time=pulled_at,
                    pity_count=pity_count,
                    is_featured=raw.is_featured,
                )
            )
        except IntegrityError:
            self.skipped += 1
            self._audit("SKIP_CONFLICT", raw)
            return
        except SQLAlchemyError as e:
            await self.store.rollback()
            self.errors += 1
            logger.error(f"Failed to import {name!r} at {pulled_at}: {e}")
            self._audit("ERROR", raw, reason=str(e))
            return

        self.imported += 1
        self._audit("IMPORTED", raw, rank_type=rank_type, pity_count=pity_count)

    async def _refresh_stats(self) -> None:
        if self.stats is None:
            return

        self._report(status_message="Updating statistics")
        try:
            await self.stats.recompute(self.user_id, self.game)
        except SQLAlchemyError as e:
            await self.store.rollback()
            logger.error(f"Import {self.upload_id}: failed to update statistics: {e}")

    def _finish(self, state: ImportState, message: str) -> ImportProgress:
        self._percent = 100.0
        self._report(state=state, status_message=message, completed=True, current_item=None)
        self.progress.expire_after(self.upload_id, self.retention_seconds)
        logger.info(f"Import {self.upload_id} {state}: {message}")

        snapshot = self.progress.get(self.upload_id)
        if snapshot is None:
            # Only possible with a zero retention window
            return ImportProgress(
                upload_id=self.upload_id,
                progress_percent=100.0,
                status_message=message,
                state=state,
                completed=True,
                imported=self.imported,
                skipped=self.skipped,
                errors=self.errors,
                total=self.total,
            )
        return snapshot


class ImportJobRunner:
    """Starts import jobs as background tasks and keeps track of the running ones."""

    def __init__(
        self, progress: ProgressStore, session_factory: SessionFactory = get_session
    ) -> None:
        self.progress = progress
        self._session_factory = session_factory
        self._tasks: dict[str, asyncio.Task[ImportProgress]] = {}
        self._owners: dict[str, int] = {}

    def submit(self, *, user_id: int, source: PullSource) -> str:
        """Register the job and return its upload id, the import itself runs in the background."""
        upload_id = generate_upload_id()
        self.progress.set(upload_id, ImportProgress(upload_id=upload_id))

        task = asyncio.create_task(
            self._run(upload_id, user_id, source), name=f"import-{upload_id}"
        )
        self._tasks[upload_id] = task
        self._owners[upload_id] = user_id
        task.add_done_callback(lambda _: self._forget(upload_id))
        logger.info(f"Queued import {upload_id} for user {user_id} ({source.game})")
        return upload_id

    def _forget(self, upload_id: str) -> None:
        self._tasks.pop(upload_id, None)
        self._owners.pop(upload_id, None)

    async def _run(self, upload_id: str, user_id: int, source: PullSource) -> ImportProgress:
        try:
            async with self._session_factory() as session:
                store = PullStore(session)
                orchestrator = ImportOrchestrator(
                    upload_id,
                    user_id,
                    source,
                    store,
                    self.progress,
                    stats=UserStatsService(session),
                )
                return await orchestrator.run()
        except SQLAlchemyError as e:
            # The orchestrator reports everything it runs into, this only covers opening the session
            logger.exception(f"Import {upload_id} could not start")
            snapshot = ImportProgress(
                upload_id=upload_id,
                progress_percent=100.0,
                status_message=f"Import failed: {e}",
                state=ImportState.FAILED,
                completed=True,
                errors=1,
            )
            self.progress.set(upload_id, snapshot)
            self.progress.expire_after(upload_id, settings.progress_retention_seconds)
            return snapshot

    def is_running(self, upload_id: str) -> bool:
        return upload_id in self._tasks

    def cancel(self, upload_id: str, *, user_id: int) -> bool:
        task = self._tasks.get(upload_id)
        if task is None or self._owners.get(upload_id) != user_id:
            return False
        return task.cancel()

    async def wait(self, upload_id: str) -> ImportProgress | None:
        task = self._tasks.get(upload_id)
        if task is None:
            return self.progress.get(upload_id)
        return await task

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


import_runner = ImportJobRunner(progress_store)


def get_import_runner() -> ImportJobRunner:
    return import_runner
