"""Local storage for question images uploaded with an exam."""

import logging
import os
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

from starlette.datastructures import UploadFile

from errors import InvalidRequest, StoreFailure

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class AssetStorage:
    """Writes uploads under ``directory`` and hands back URLs under ``url_prefix``."""

    def __init__(self, directory: str, url_prefix: str = "/uploads",
                 max_bytes: int = 5 * 1024 * 1024,
                 content_types: Sequence[str] = tuple(EXTENSIONS)):
        self.directory = directory
        self.url_prefix = url_prefix.rstrip("/")
        self.max_bytes = max_bytes
        self.content_types = tuple(content_types)

    def ensure_directory(self):
        Path(self.directory).mkdir(parents=True, exist_ok=True)

    def _too_large(self, upload: UploadFile, detail: str) -> InvalidRequest:
        return InvalidRequest(
            "File too large",
            f"{upload.filename}: {detail} exceeds limit of {self.max_bytes} bytes",
        )

    async def _read(self, upload: UploadFile) -> bytes:
        if upload.content_type not in self.content_types:
            raise InvalidRequest(
                "Only image files are allowed",
                f"{upload.filename}: unsupported type {upload.content_type}",
            )
        if upload.size is not None and upload.size > self.max_bytes:
            raise self._too_large(upload, f"{upload.size} bytes")
        # one byte past the limit is enough to tell an oversized file apart
        data = await upload.read(self.max_bytes + 1)
        if len(data) > self.max_bytes:
            raise self._too_large(upload, "upload")
        return data

    async def save_all(self, uploads: Iterable[UploadFile]) -> List[str]:
        """Validate every upload, then write them; nothing is kept if any step fails."""
        pending = [(upload, await self._read(upload)) for upload in uploads]
        urls = []
        try:
            self.ensure_directory()
            for upload, data in pending:
                name = f"{uuid.uuid4().hex}{EXTENSIONS.get(upload.content_type, '')}"
                with open(os.path.join(self.directory, name), "wb") as f:
                    urls.append(f"{self.url_prefix}/{name}")
                    f.write(data)
                logger.info("Saved upload %s as %s", upload.filename, name)
        except OSError as e:
            logger.exception("Failed to save uploads")
            self.discard(urls)
            raise StoreFailure("Failed to save uploaded images", str(e))
        return urls

    def owns(self, url: Any) -> bool:
        return isinstance(url, str) and url.startswith(self.url_prefix + "/")

    def discard(self, urls: Iterable[str]):
        for url in urls:
            path = os.path.join(self.directory, os.path.basename(url))
            try:
                if os.path.isfile(path):
                    os.remove(path)
            except OSError as e:
                logger.warning("Could not remove upload %s: %s", path, e)

    def discard_images(self, questions: Iterable[Dict[str, Any]]):
        """Remove the stored files referenced by these questions' ``image`` fields."""
        self.discard([q.get("image") for q in questions if self.owns(q.get("image"))])


def bind_images(questions: List[Dict[str, Any]], urls: Sequence[str]) -> List[Dict[str, Any]]:
    """Attach image URLs to questions by position.

    Extra URLs are ignored and questions past the last URL keep their own
    ``image`` value, if any.
    """
    bound = []
    for position, question in enumerate(questions):
        question = dict(question)
        if position < len(urls):
            question["image"] = urls[position]
        bound.append(question)
    return bound
