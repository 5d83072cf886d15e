"""
Local file storage for transfer documents.

Bytes are written here before any database work starts; the transfer
workflow only ever sees the resulting `StoredFile` metadata.
"""

import logging
import os
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from fastapi import UploadFile

from app.config.settings import settings
from app.core.exceptions import DocumentTooLarge, InvalidDocument

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class StoredFile:
    original_name: str
    file_name: str
    file_path: str
    file_type: str
    file_size: int


class DocumentStorage:

    def __init__(self, upload_dir: Optional[str] = None):
        self.upload_dir = Path(upload_dir or settings.upload_dir)

    def save_uploads(self, uploads: Iterable[UploadFile]) -> List[StoredFile]:
        """Validate and write every upload; nothing is kept if one of them is rejected"""
        uploads = [u for u in uploads if u is not None and u.filename]
        if len(uploads) > settings.max_documents_per_request:
            raise InvalidDocument(
                f"Too many files. Maximum {settings.max_documents_per_request} files allowed."
            )

        stored: List[StoredFile] = []
        try:
            for upload in uploads:
                stored.append(self.save_upload(upload))
        except Exception:
            self.remove_files(f.file_path for f in stored)
            raise
        return stored

    def save_upload(self, upload: UploadFile) -> StoredFile:
        ext = Path(upload.filename).suffix.lower()
        if ext not in settings.allowed_document_extensions:
            allowed = ", ".join(sorted(settings.allowed_document_extensions))
            raise InvalidDocument(f"Invalid file type: {ext or 'none'}. Only {allowed} files are allowed.")

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        file_name = f"doc-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"
        target = self.upload_dir / file_name

        size = 0
        try:
            with open(target, "wb") as out:
                while True:
                    chunk = upload.file.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > settings.max_document_size:
                        raise DocumentTooLarge(
                            f"File too large. Maximum file size is {settings.max_document_size // (1024 * 1024)}MB."
                        )
                    out.write(chunk)
        except Exception:
            # Never leave a partial file behind
            target.unlink(missing_ok=True)
            raise

        logger.info(f"Stored document {upload.filename} as {target} ({size} bytes)")
        return StoredFile(
            original_name=upload.filename,
            file_name=file_name,
            file_path=str(target),
            file_type=ext,
            file_size=size,
        )

    def remove_files(self, paths: Iterable[str]) -> Dict[str, object]:
        """Best-effort removal; missing or locked files are reported, never raised"""
        details = []
        for path in paths:
            try:
                os.remove(path)
                details.append({"file": path, "success": True})
            except FileNotFoundError:
                logger.warning(f"File not found, skipping: {path}")
                details.append({"file": path, "success": False, "error": "File not found"})
            except OSError as e:
                logger.error(f"Error deleting file {path}: {e}")
                details.append({"file": path, "success": False, "error": str(e)})

        successful = sum(1 for d in details if d["success"])
        return {
            "total": len(details),
            "successful": successful,
            "failed": len(details) - successful,
            "details": details,
        }
