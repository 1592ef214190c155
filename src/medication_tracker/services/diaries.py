"""Repository for health diary notes."""

import logging
from dataclasses import replace

from medication_tracker.domain.diary import HealthDiary
from medication_tracker.domain.errors import (
    NotFoundError,
    OperationResult,
    ValidationError,
)
from medication_tracker.services.base import BaseRepository
from medication_tracker.services.snapshots import Listener, Subscription
from medication_tracker.services.store import HEALTH_DIARIES_TABLE, Row
from medication_tracker.services.validation import (
    DIARY_ID_INVALID,
    SEARCH_KEYWORD_EMPTY,
    TIME_RANGE_INVALID,
    validate_content,
    validate_diary,
)

DIARY_NOT_FOUND = "diary does not exist"

_logger = logging.getLogger(__name__)


class HealthDiaryRepository(BaseRepository):
    """Stores diary notes, validating content before every write."""

    validate_content = staticmethod(validate_content)

    async def create(self, diary: HealthDiary) -> OperationResult[HealthDiary]:
        return await self._run("create", self._create, replace(diary))

    async def update(self, diary: HealthDiary) -> OperationResult[HealthDiary]:
        """Save edited content; owner and creation time stay as stored."""
        return await self._run("update", self._update, replace(diary))

    async def delete(self, diary_id: int) -> OperationResult[bool]:
        return await self._run("delete", self._delete, diary_id)

    async def get_by_id(self, diary_id: int) -> OperationResult[HealthDiary]:
        return await self._run("get_by_id", self._get_by_id, diary_id)

    async def get_all(self, user_id: int | None = None) -> OperationResult[list[HealthDiary]]:
        return await self._run("get_all", self._load, user_id)

    async def get_count(self, user_id: int | None = None) -> OperationResult[int]:
        filters = {"user_id": user_id} if user_id is not None else None
        return await self._run(
            "get_count", lambda: self._store.count(HEALTH_DIARIES_TABLE, filters)
        )

    async def search(self, user_id: int, query: str) -> OperationResult[list[HealthDiary]]:
        return await self._run("search", self._search, user_id, query)

    async def get_in_range(
        self, user_id: int, start_time: int, end_time: int
    ) -> OperationResult[list[HealthDiary]]:
        return await self._run(
            "get_in_range", self._in_range, user_id, start_time, end_time
        )

    def observe_all(self, listener: Listener, user_id: int | None = None) -> Subscription:
        """Deliver the diary list now and after every change."""
        return self._observe(("diaries", user_id), lambda: self._load(user_id), listener)

    def _create(self, diary: HealthDiary) -> HealthDiary:
        error = validate_diary(diary)
        if error:
            raise ValidationError(error)
        diary.id = 0
        diary.id = self._store.upsert(HEALTH_DIARIES_TABLE, diary_to_row(diary))
        _logger.info("Diary created: id=%s user_id=%s", diary.id, diary.user_id)
        self.refresh_snapshots()
        return replace(diary)

    def _update(self, diary: HealthDiary) -> HealthDiary:
        if diary.id <= 0:
            raise ValidationError(DIARY_ID_INVALID)
        error = validate_content(diary.content)
        if error:
            raise ValidationError(error)
        with self._locks.hold(diary.id):
            existing = self._require(diary.id)
            updated = replace(existing, content=diary.content)
            updated.mark_as_updated()
            self._store.upsert(HEALTH_DIARIES_TABLE, diary_to_row(updated))
        _logger.info("Diary updated: id=%s", diary.id)
        self.refresh_snapshots()
        return updated

    def _delete(self, diary_id: int) -> bool:
        with self._locks.hold(diary_id):
            if not self._store.delete_by_id(HEALTH_DIARIES_TABLE, diary_id):
                raise NotFoundError(DIARY_NOT_FOUND)
        _logger.info("Diary deleted: id=%s", diary_id)
        self.refresh_snapshots()
        return True

    def _require(self, diary_id: int) -> HealthDiary:
        row = self._store.get_by_id(HEALTH_DIARIES_TABLE, diary_id)
        if row is None:
            raise NotFoundError(DIARY_NOT_FOUND)
        return self._parse(row)

    def _get_by_id(self, diary_id: int) -> HealthDiary:
        return self._require(diary_id)

    def _load(self, user_id: int | None) -> list[HealthDiary]:
        filters = {"user_id": user_id} if user_id is not None else None
        rows = self._store.query_all(
            HEALTH_DIARIES_TABLE,
            filters=filters,
            order_by="created_at",
            descending=True,
        )
        return [self._parse(row) for row in rows]

    def _search(self, user_id: int, query: str) -> list[HealthDiary]:
        needle = (query or "").strip().casefold()
        if not needle:
            raise ValidationError(SEARCH_KEYWORD_EMPTY)
        return [
            diary
            for diary in self._load(user_id)
            if needle in (diary.content or "").casefold()
        ]

    def _in_range(self, user_id: int, start_time: int, end_time: int) -> list[HealthDiary]:
        if start_time > end_time:
            raise ValidationError(TIME_RANGE_INVALID)
        return [
            diary
            for diary in self._load(user_id)
            if start_time <= diary.created_at <= end_time
        ]

    def _parse(self, row: Row) -> HealthDiary:
        created_at = int(row.get("created_at") or 0)
        updated_at = int(row.get("updated_at") or 0)
        return HealthDiary(
            id=int(row["id"]),
            user_id=int(row.get("user_id") or 0),
            content=row.get("content"),  # type: ignore[arg-type]
            created_at=created_at,
            updated_at=updated_at,
            modified=updated_at > created_at,
            clock=self._clock,
        )


def diary_to_row(diary: HealthDiary) -> Row:
    return {
        "id": diary.id,
        "user_id": diary.user_id,
        "content": diary.content,
        "created_at": diary.created_at,
        "updated_at": diary.updated_at,
    }
