import logging
import time
import uuid
from typing import Callable

from vaultmemo.core.errors import bad_request, not_found
from vaultmemo.db import KVStore
from vaultmemo.services.app_settings import iso_now

logger = logging.getLogger(__name__)

ITEM_PREFIX = "item:"

TITLE_MIN, TITLE_MAX = 2, 50
CONTENT_MIN, CONTENT_MAX = 1, 1000


class ItemService:
    """Password/key manager entries, one KV key per item."""

    def __init__(self, store: KVStore, clock: Callable[[], float] = time.time):
        self.store = store
        self._clock = clock

    def list_items(self) -> list:
        items = []
        for key in self.store.list(ITEM_PREFIX):
            item = self.store.get_json(key)
            if isinstance(item, dict):
                items.append(item)
            else:
                logger.error(f"Skipping unreadable item under key={key}")

        # Newest first
        return sorted(items, key=lambda i: str(i.get("createdAt", "")), reverse=True)

    def create_item(self, platform: str, title: str, content: str) -> dict:
        platform = (platform or "").strip()
        title = (title or "").strip()
        content = (content or "").strip()

        if not platform or not title or not content:
            raise bad_request("platform, title and content are required")
        if not TITLE_MIN <= len(title) <= TITLE_MAX:
            raise bad_request(f"Title must be {TITLE_MIN}-{TITLE_MAX} characters")
        if not CONTENT_MIN <= len(content) <= CONTENT_MAX:
            raise bad_request(f"Content must be {CONTENT_MIN}-{CONTENT_MAX} characters")

        item_id = str(uuid.uuid4())
        while self.store.get(ITEM_PREFIX + item_id) is not None:
            item_id = str(uuid.uuid4())

        now = iso_now(self._clock)
        item = {
            "id": item_id,
            "platform": platform,
            "title": title,
            "content": content,
            "createdAt": now,
            "updatedAt": now,
        }
        self.store.put_json(ITEM_PREFIX + item_id, item)
        logger.info(f"Item created: id={item_id}")
        return item

    def delete_item(self, item_id: str) -> None:
        if not item_id or self.store.get(ITEM_PREFIX + item_id) is None:
            raise not_found(f"Item {item_id} not found")
        self.store.delete(ITEM_PREFIX + item_id)
        logger.info(f"Item deleted: id={item_id}")
