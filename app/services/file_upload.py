import asyncio
import logging
from pathlib import Path, PurePosixPath

import httpx

from app.core.exceptions import UploadError

logger = logging.getLogger(__name__)

REFERENCE_URL_PREFIX = "/reference-images/"
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif"}


def is_remote_url(value: str) -> bool:
    lowered = value.strip().lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


class KieFileUploader:
    """Uploads local reference images to the KIE file-stream endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        upload_url: str,
        api_key: str | None,
        reference_root: str | Path,
    ):
        self.client = client
        self.upload_url = upload_url
        self.api_key = api_key
        self.reference_root = Path(reference_root)

    def resolve_local_file(self, local_path: str) -> Path:
        """Map a ``/reference-images/<style>/<file>`` path onto the reference root."""
        path = Path(local_path)
        if path.is_absolute() and path.exists():
            return path
        relative = local_path.lstrip("/")
        prefix = REFERENCE_URL_PREFIX.strip("/") + "/"
        if relative.startswith(prefix):
            relative = relative[len(prefix):]
        return self.reference_root / relative

    async def upload_reference(self, local_path: str, style_id: str) -> str:
        file_name = PurePosixPath(local_path).name or "reference.png"
        return await self.upload_file(local_path, f"reference-images/{style_id}", file_name)

    async def upload_file(self, local_path: str, upload_path: str, file_name: str | None = None) -> str:
        if not self.api_key:
            raise UploadError("KIE_API_KEY is not set in environment", local_path=local_path)

        file_path = self.resolve_local_file(local_path)
        try:
            data = await asyncio.to_thread(file_path.read_bytes)
        except OSError as exc:
            raise UploadError(f"Cannot read reference image {file_path}: {exc}", local_path=local_path) from exc

        name = file_name or file_path.name
        try:
            response = await self.client.post(
                self.upload_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                data={"uploadPath": upload_path, "fileName": name},
                files={"file": (name, data)},
            )
        except httpx.HTTPError as exc:
            raise UploadError(f"Upload request failed: {exc!r}", local_path=local_path) from exc

        if response.status_code >= 400:
            raise UploadError(
                f"Failed to upload file to KIE: {response.status_code} {response.text[:200]}",
                local_path=local_path,
            )
        try:
            result = response.json()
        except ValueError as exc:
            raise UploadError("KIE upload returned a non-JSON body", local_path=local_path) from exc

        if not isinstance(result, dict) or not result.get("success") or result.get("code") != 200:
            message = result.get("msg") if isinstance(result, dict) else None
            raise UploadError(f"KIE upload failed: {message or 'Unknown error'}", local_path=local_path)

        payload = result.get("data")
        file_url = None
        if isinstance(payload, dict):
            file_url = payload.get("fileUrl") or payload.get("downloadUrl")
        if not isinstance(file_url, str) or not file_url:
            raise UploadError("KIE upload response missing file URL", local_path=local_path)

        logger.info("reference_uploaded path=%s upload_path=%s url=%s", local_path, upload_path, file_url)
        return file_url


def list_style_preset_paths(reference_root: str | Path, style_id: str) -> list[str]:
    """Return the style's preset reference files as ``/reference-images/<style>/<file>`` paths."""
    style_dir = Path(reference_root) / style_id
    if not style_dir.is_dir():
        return []
    files = sorted(
        p.name for p in style_dir.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
    )
    return [f"{REFERENCE_URL_PREFIX}{style_id}/{name}" for name in files]
