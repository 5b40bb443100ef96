"""Disk storage for employee documents.

Accepts at most one PDF per document field, writes it to the upload directory
under a generated name, and hands the name back to the row writer. The bytes
live only on disk; the database stores the filename.
"""
from __future__ import annotations

import logging
import random
import time
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from fastapi import UploadFile

from .config import UploadSettings
from .models import DOCUMENT_FIELDS

logger = logging.getLogger(__name__)


PDF_ONLY_MESSAGE = "Hanya file PDF yang diperbolehkan!"


class UploadError(Exception):
    """Raised when an uploaded document cannot be accepted."""

    def __init__(self, message: str, field: str | None = None):
        self.message = message
        self.field = field
        super().__init__(message)


class UnsupportedMediaTypeError(UploadError):
    """Raised when a document's declared content type is not allowed."""
    pass


def _declared_type(file: UploadFile) -> str:
    return (file.content_type or "").split(";", 1)[0].strip().lower()


def generate_filename(field: str, original_name: str) -> str:
    """Build ``{field}-{epoch millis}-{random}{original extension}``."""
    millis = int(time.time() * 1000)
    suffix = random.randint(0, 10**9)
    return f"{field}-{millis}-{suffix}{Path(original_name).suffix}"


class UploadStorage:
    """Upload directory for employee documents."""

    def __init__(self, settings: UploadSettings):
        self.base_path = Path(settings.dir)
        self.allowed_content_types = {t.lower() for t in settings.allowed_content_types}
        self.chunk_size = settings.chunk_size

    def ensure_directory(self) -> Path:
        self.base_path.mkdir(parents=True, exist_ok=True)
        return self.base_path

    def _check_type(self, field: str, file: UploadFile) -> None:
        content_type = _declared_type(file)
        if content_type not in self.allowed_content_types:
            logger.warning(
                f"Rejected upload for {field}: {file.filename} ({content_type or 'no content type'})"
            )
            raise UnsupportedMediaTypeError(PDF_ONLY_MESSAGE, field=field)

    def validate(self, files: Mapping[str, Sequence[UploadFile]]) -> dict[str, UploadFile]:
        """Check every submitted part before anything is written.

        Args:
            files: Every file part of the request, grouped by field name

        Returns:
            The one document submitted per field, keyed by field

        Raises:
            UnsupportedMediaTypeError: If any part is not a PDF
            UploadError: If a field is not a document field or carries more than one file
        """
        submitted = {}
        for field, parts in files.items():
            # Browsers send an empty part for file inputs left blank
            parts = [file for file in parts if file.filename]
            if not parts:
                continue
            if field not in DOCUMENT_FIELDS:
                raise UploadError(f"Jenis dokumen tidak dikenal: {field}", field=field)
            for file in parts:
                self._check_type(field, file)
            if len(parts) > 1:
                raise UploadError(f"Hanya satu file yang diperbolehkan untuk {field}.", field=field)
            submitted[field] = parts[0]
        return submitted

    async def save(self, field: str, file: UploadFile) -> str:
        """Write one document and return its generated filename."""
        filename = generate_filename(field, file.filename or "")
        path = self.base_path / filename
        size = 0

        try:
            with open(path, "wb") as buffer:
                while chunk := await file.read(self.chunk_size):
                    buffer.write(chunk)
                    size += len(chunk)
        except OSError:
            path.unlink(missing_ok=True)
            raise
        finally:
            await file.close()

        logger.info(f"Saved {field} upload {file.filename!r} as {filename} ({size} bytes)")
        return filename

    async def save_all(self, files: Mapping[str, Sequence[UploadFile]]) -> dict[str, str]:
        """Validate then write all submitted documents.

        Returns:
            Generated filenames keyed by document field

        Raises:
            UploadError: If any part is rejected; nothing is written
        """
        submitted = self.validate(files)
        saved: dict[str, str] = {}
        try:
            for field, file in submitted.items():
                saved[field] = await self.save(field, file)
        except Exception:
            self.remove(saved.values())
            raise
        return saved

    def path_for(self, filename: str) -> Path:
        """Resolve a stored filename inside the upload directory.

        Raises:
            FileNotFoundError: If the name escapes the directory or no such file exists
        """
        base = self.base_path.resolve()
        path = (base / filename).resolve()
        if path.parent != base or not path.is_file():
            raise FileNotFoundError(filename)
        return path

    def remove(self, filenames: Iterable[str]) -> None:
        """Delete stored documents, ignoring ones already gone."""
        for filename in filenames:
            try:
                self.path_for(filename).unlink()
                logger.info(f"Removed upload {filename}")
            except FileNotFoundError:
                continue
