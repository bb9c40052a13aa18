#!/usr/bin/env python3
"""Upload every preset reference image once and report which files the KIE upload endpoint rejects.

This only checks that presets are uploadable. The server keeps its own
in-process upload cache, so nothing uploaded here is reused by it.
"""

import argparse
import asyncio
import sys
from pathlib import Path

import httpx

from app.core.exceptions import UploadError
from app.core.settings import settings
from app.services.file_upload import KieFileUploader, list_style_preset_paths


def _style_dirs(root: Path, only: list[str]) -> list[str]:
    if only:
        return only
    if not root.is_dir():
        return []
    return sorted(entry.name for entry in root.iterdir() if entry.is_dir())


async def verify_uploads(uploader: KieFileUploader, root: Path, style_ids: list[str]) -> int:
    failures = 0
    for style_id in _style_dirs(root, style_ids):
        paths = list_style_preset_paths(root, style_id)
        results = await asyncio.gather(
            *(uploader.upload_reference(path, style_id) for path in paths),
            return_exceptions=True,
        )
        for path, result in zip(paths, results):
            if isinstance(result, UploadError):
                failures += 1
                print(f"FAILED {path}: {result}", file=sys.stderr)
            elif isinstance(result, BaseException):
                raise result
            else:
                print(f"OK {path}")
    return failures


async def _run(style_ids: list[str]) -> int:
    root = Path(settings.reference_image_root)
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        uploader = KieFileUploader(
            client,
            upload_url=settings.kie_upload_url,
            api_key=settings.kie_api_key,
            reference_root=root,
        )
        return await verify_uploads(uploader, root, style_ids)


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("style_ids", nargs="*", help="limit to these style ids (default: every preset folder)")
    args = parser.parse_args()

    if not settings.kie_api_key:
        print("KIE_API_KEY is not set", file=sys.stderr)
        sys.exit(1)

    failures = asyncio.run(_run(args.style_ids))
    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
