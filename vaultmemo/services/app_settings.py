import copy
import logging
import time
from datetime import datetime, timezone
from typing import Callable

from vaultmemo.core.errors import bad_request
from vaultmemo.db import KVStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "app:settings"
DEFAULT_SETTINGS = {
    "theme": {
        "primaryColor": "#4CAF50",
        "backgroundColor": "#f5f5f5",
    }
}
# Written by the server only
PROTECTED_FIELDS = ("currentPassword", "deployTime", "lastUpdated")


def iso_now(clock: Callable[[], float]) -> str:
    return datetime.fromtimestamp(clock(), tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AppSettings:
    """Theme / background settings blob, shallow-merged on every update."""

    def __init__(self, store: KVStore, max_bg_image_bytes: int = 5 * 1024 * 1024, clock: Callable[[], float] = time.time):
        self.store = store
        self.max_bg_image_bytes = max_bg_image_bytes
        self._clock = clock

    def _load(self) -> dict:
        current = self.store.get_json(SETTINGS_KEY)
        if not isinstance(current, dict):
            return {}
        return current

    def get(self, include_password: bool = False) -> dict:
        current = {**copy.deepcopy(DEFAULT_SETTINGS), **self._load()}
        if not include_password:
            current.pop("currentPassword", None)
        return current

    def _check_bg_image(self, image) -> None:
        if image is None:
            return
        if not isinstance(image, str):
            raise bad_request("loginBgImage must be a data URL string")
        # Data URL: "data:image/png;base64,<payload>"
        payload = image.split(",", 1)[1] if "," in image else image
        if len(payload) * 0.75 > self.max_bg_image_bytes:
            limit_mb = self.max_bg_image_bytes / (1024 * 1024)
            raise bad_request(f"Background image must not exceed {limit_mb:g} MB")

    def update(self, new_settings: dict) -> dict:
        if not isinstance(new_settings, dict):
            raise bad_request("Settings must be a JSON object")

        incoming = {k: v for k, v in new_settings.items() if k not in PROTECTED_FIELDS}
        dropped = set(new_settings) - set(incoming)
        if dropped:
            logger.warning(f"Ignoring server-managed settings fields: {sorted(dropped)}")

        self._check_bg_image(incoming.get("loginBgImage"))

        updated = {**self._load(), **incoming, "lastUpdated": iso_now(self._clock)}
        self.store.put_json(SETTINGS_KEY, updated)

        updated.pop("currentPassword", None)
        return updated

    def mirror_password(self, password: str, deployed: bool = False) -> None:
        current = self._load()
        current["currentPassword"] = password
        if deployed:
            current["deployTime"] = iso_now(self._clock)
        self.store.put_json(SETTINGS_KEY, current)
