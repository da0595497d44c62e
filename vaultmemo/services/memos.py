import logging
import time
import uuid
from typing import Callable, Optional

from vaultmemo.core.errors import ApiError, bad_request, not_found
from vaultmemo.db import KVStore

logger = logging.getLogger(__name__)

MEMO_KEY = "all_memos"
DEFAULT_CATEGORY = "未分类"
DEFAULT_COLOR = 1
COLORS = range(1, 6)

TITLE_MAX = 100
CONTENT_MAX = 10000
CATEGORY_MAX = 20


class MemoService:
    """
    Memos are stored together as one JSON array under MEMO_KEY.
    Every mutation re-reads the whole list and writes it back; concurrent
    writers are not coordinated, so the last write wins.
    """

    def __init__(self, store: KVStore, clock: Callable[[], float] = time.time):
        self.store = store
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock() * 1000)

    def _load(self) -> list:
        memos = self.store.get_json(MEMO_KEY, [])
        if not isinstance(memos, list):
            logger.error(f"{MEMO_KEY} is not a list; treating collection as empty")
            return []
        return [m for m in memos if isinstance(m, dict)]

    def _save(self, memos: list) -> None:
        self.store.put_json(MEMO_KEY, memos)

    @staticmethod
    def _new_id(existing: set) -> str:
        memo_id = uuid.uuid4().hex
        while memo_id in existing:
            memo_id = uuid.uuid4().hex
        return memo_id

    @staticmethod
    def _text(value, field: str, max_len: int) -> str:
        if not isinstance(value, str) or not value.strip():
            raise bad_request(f"{field} is required")
        value = value.strip()
        if len(value) > max_len:
            raise bad_request(f"{field} must be at most {max_len} characters")
        return value

    @staticmethod
    def _category(value) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_CATEGORY
        if not isinstance(value, str):
            raise bad_request("category must be a string")
        value = value.strip()
        if len(value) > CATEGORY_MAX:
            raise bad_request(f"category must be at most {CATEGORY_MAX} characters")
        return value

    @staticmethod
    def _color(value) -> int:
        if value is None:
            return DEFAULT_COLOR
        if isinstance(value, bool) or not isinstance(value, int) or value not in COLORS:
            raise bad_request("categoryColor must be an integer from 1 to 5")
        return value

    def list_memos(self, category: Optional[str] = None) -> list:
        memos = self._load()
        if category:
            memos = [m for m in memos if m.get("category") == category]
        return memos

    def get_memo(self, memo_id: str) -> dict:
        for memo in self._load():
            if memo.get("id") == memo_id:
                return memo
        raise not_found(f"Memo {memo_id} not found")

    def create_memo(self, title, content, category=None, category_color=None) -> dict:
        memo = {
            "title": self._text(title, "title", TITLE_MAX),
            "content": self._text(content, "content", CONTENT_MAX),
            "category": self._category(category),
            "categoryColor": self._color(category_color),
        }

        memos = self._load()
        memo["id"] = self._new_id({m.get("id") for m in memos})
        memo["createdAt"] = self._now()

        memos.insert(0, memo)
        self._save(memos)
        logger.info(f"Memo created: id={memo['id']}")
        return memo

    def update_memo(self, memo_id: str, changes: dict) -> dict:
        memos = self._load()
        for memo in memos:
            if memo.get("id") == memo_id:
                break
        else:
            raise not_found(f"Memo {memo_id} not found")

        if "title" in changes and changes["title"] is not None:
            memo["title"] = self._text(changes["title"], "title", TITLE_MAX)
        if "content" in changes and changes["content"] is not None:
            memo["content"] = self._text(changes["content"], "content", CONTENT_MAX)
        if "category" in changes:
            memo["category"] = self._category(changes["category"])
        if "categoryColor" in changes and changes["categoryColor"] is not None:
            memo["categoryColor"] = self._color(changes["categoryColor"])

        # createdAt is never touched
        memo["updatedAt"] = self._now()
        self._save(memos)
        logger.info(f"Memo updated: id={memo_id}")
        return memo

    def delete_memo(self, memo_id: str) -> None:
        memos = self._load()
        remaining = [m for m in memos if m.get("id") != memo_id]
        if len(remaining) == len(memos):
            raise not_found(f"Memo {memo_id} not found")
        self._save(remaining)
        logger.info(f"Memo deleted: id={memo_id}")

    def import_memos(self, payload) -> dict:
        """
        Bulk import. Accepts a list of memos or {"memos": [...]}.
        Entries without a usable title/content are skipped; a missing or
        invalid category/categoryColor falls back to the defaults.
        """
        entries = payload.get("memos") if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            raise bad_request("Import expects a list of memos")

        memos = self._load()
        ids = {m.get("id") for m in memos}
        now = self._now()
        imported, skipped = [], 0

        for entry in entries:
            if not isinstance(entry, dict):
                skipped += 1
                continue
            try:
                title = self._text(entry.get("title"), "title", TITLE_MAX)
                content = self._text(entry.get("content"), "content", CONTENT_MAX)
            except ApiError:
                skipped += 1
                continue

            try:
                category = self._category(entry.get("category"))
            except ApiError:
                category = DEFAULT_CATEGORY
            try:
                color = self._color(entry.get("categoryColor"))
            except ApiError:
                color = DEFAULT_COLOR

            memo_id = entry.get("id")
            if not isinstance(memo_id, str) or not memo_id or memo_id in ids:
                memo_id = self._new_id(ids)
            ids.add(memo_id)

            created_at = entry.get("createdAt")
            if isinstance(created_at, bool) or not isinstance(created_at, int) or created_at <= 0:
                created_at = now

            memo = {
                "id": memo_id,
                "title": title,
                "content": content,
                "category": category,
                "categoryColor": color,
                "createdAt": created_at,
            }
            updated_at = entry.get("updatedAt")
            if isinstance(updated_at, int) and not isinstance(updated_at, bool) and updated_at > 0:
                memo["updatedAt"] = updated_at
            imported.append(memo)

        if imported:
            memos.extend(imported)
            self._save(memos)

        logger.info(f"Memo import: imported={len(imported)}, skipped={skipped}")
        return {"imported": len(imported), "skipped": skipped, "memos": imported}
