import asyncio
import logging
from collections.abc import Awaitable, Callable

from app.core.metrics import record_upload_cache_lookup
from app.services.file_upload import is_remote_url

logger = logging.getLogger(__name__)

UploadFn = Callable[[str, str], Awaitable[str]]


def normalize_local_path(local_path: str) -> str:
    path = local_path.strip().replace("\\", "/")
    while "//" in path:
        path = path.replace("//", "/")
    if path.startswith("./"):
        path = path[1:]
    if not path.startswith("/"):
        path = "/" + path
    return path


def cache_key(style_id: str, local_path: str) -> str:
    return f"{style_id}:{normalize_local_path(local_path)}"


class UploadCache:
    """Process-lifetime map of (style, local path) to uploaded URL.

    The first caller for a key publishes its in-flight upload task before the
    upload completes; later callers await that same task. A failed upload is
    removed so the next caller retries. Successful entries are never evicted.
    """

    def __init__(self, upload: UploadFn):
        self._upload = upload
        self._entries: dict[str, asyncio.Task[str]] = {}

    async def ensure_uploaded(self, local_path: str, style_id: str) -> str:
        if is_remote_url(local_path):
            record_upload_cache_lookup("bypass")
            return local_path

        key = cache_key(style_id, local_path)
        task = self._entries.get(key)
        if task is None:
            record_upload_cache_lookup("miss")
            task = asyncio.create_task(self._upload(local_path, style_id), name=f"upload:{key}")
            # No await between the lookup and this insert.
            self._entries[key] = task
            task.add_done_callback(lambda done, key=key: self._on_done(key, done))
        else:
            record_upload_cache_lookup("hit")

        return await asyncio.shield(task)

    def _on_done(self, key: str, task: asyncio.Task[str]) -> None:
        if task.cancelled():
            failed = True
        else:
            failed = task.exception() is not None
        if failed and self._entries.get(key) is task:
            del self._entries[key]
            logger.warning("upload_cache_evicted key=%s", key)

    def peek(self, local_path: str, style_id: str) -> str | None:
        task = self._entries.get(cache_key(style_id, local_path))
        if task is None or not task.done() or task.cancelled() or task.exception() is not None:
            return None
        return task.result()

    def stats(self) -> dict[str, int]:
        resolved = sum(1 for t in self._entries.values() if t.done())
        return {"entries": len(self._entries), "resolved": resolved, "pending": len(self._entries) - resolved}

    def __len__(self) -> int:
        return len(self._entries)
