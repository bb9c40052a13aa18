import asyncio
import logging
from collections.abc import Mapping, Sequence
from posixpath import basename
from urllib.parse import urlparse

from app.core.exceptions import UploadError
from app.services.file_upload import REFERENCE_URL_PREFIX, is_remote_url
from app.services.upload_cache import UploadCache, normalize_local_path

logger = logging.getLogger(__name__)

DEFAULT_MAX_REFERENCE_IMAGES = 10


def canonical_reference_path(value: str, style_id: str) -> str:
    """Reduce a reference image URL or local path to ``/reference-images/<style>/<file>``.

    Remote URLs that do not embed a reference-images path keep their host and
    path so distinct remote images never collide.
    """
    remote = is_remote_url(value)
    if remote:
        parsed = urlparse(value.strip())
        path = parsed.path
    else:
        path = value
    path = normalize_local_path(path)

    idx = path.find(REFERENCE_URL_PREFIX)
    if idx >= 0:
        return path[idx:]
    if remote:
        return f"//{parsed.netloc.lower()}{path}"
    return f"{REFERENCE_URL_PREFIX}{style_id}/{basename(path)}"


class ReferenceImageResolver:
    """Builds the ordered reference image list sent to an engine.

    Priority order is user references, then template references, then the
    style's preset files. Presets are deduplicated against everything already
    added and are the first to go when the engine cap is reached.
    """

    def __init__(self, cache: UploadCache, limits: Mapping[str, int] | None = None):
        self.cache = cache
        self.limits = dict(limits or {})

    def max_images(self, engine: str) -> int:
        return self.limits.get(engine, DEFAULT_MAX_REFERENCE_IMAGES)

    async def resolve(
        self,
        user_refs: Sequence[str],
        template_refs: Sequence[str],
        style_preset_paths: Sequence[str],
        engine: str,
        style_id: str,
    ) -> list[str]:
        cap = self.max_images(engine)
        resolved: list[str] = []
        seen: set[str] = set()

        def _claim(value: str) -> str | None:
            canonical = canonical_reference_path(value, style_id)
            if canonical in seen:
                return None
            seen.add(canonical)
            return canonical

        for url in user_refs:
            if url and _claim(url) is not None:
                resolved.append(url)

        def _append_uploaded(sources: list[tuple[str, str]], urls: list[str | None]) -> None:
            for (_, source_canonical), url in zip(sources, urls):
                if url is None:
                    continue
                url_canonical = canonical_reference_path(url, style_id)
                if url_canonical != source_canonical and url_canonical in seen:
                    continue
                seen.add(url_canonical)
                resolved.append(url)

        template_pending = [
            (ref, canonical) for ref in template_refs if ref and (canonical := _claim(ref)) is not None
        ]
        _append_uploaded(template_pending, await self._upload_all([p for p, _ in template_pending], style_id))

        presets = [
            (path, canonical) for path in style_preset_paths if path and (canonical := _claim(path)) is not None
        ]
        room = max(0, cap - len(resolved))
        if len(presets) > room:
            logger.info(
                "reference_presets_trimmed engine=%s cap=%s kept=%s dropped=%s",
                engine,
                cap,
                room,
                len(presets) - room,
            )
            presets = presets[:room]
        _append_uploaded(presets, await self._upload_all([p for p, _ in presets], style_id))

        if len(resolved) > cap:
            logger.warning(
                "reference_images_over_cap engine=%s cap=%s requested=%s",
                engine,
                cap,
                len(resolved),
            )
            resolved = resolved[:cap]

        logger.info(
            "reference_images_resolved engine=%s style_id=%s count=%s",
            engine,
            style_id,
            len(resolved),
        )
        return resolved

    async def _upload_all(self, paths: Sequence[str], style_id: str) -> list[str | None]:
        if not paths:
            return []
        return list(await asyncio.gather(*(self._upload_one(path, style_id) for path in paths)))

    async def _upload_one(self, path: str, style_id: str) -> str | None:
        try:
            return await self.cache.ensure_uploaded(path, style_id)
        except UploadError as exc:
            logger.warning("reference_upload_skipped path=%s error=%s", path, exc)
            return None
