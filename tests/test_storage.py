import io

import pytest
from fastapi import UploadFile

from app.core.exceptions import DocumentTooLarge, InvalidDocument
from app.config.settings import settings
from app.shared.storage import DocumentStorage


def _upload(name: str, content: bytes = b"%PDF-1.4 body") -> UploadFile:
    return UploadFile(file=io.BytesIO(content), filename=name)


def _stored_names(upload_dir):
    return sorted(p.name for p in upload_dir.iterdir()) if upload_dir.exists() else []


def test_save_uploads_writes_every_file(storage, upload_dir):
    stored = storage.save_uploads([_upload("a.pdf"), _upload("b.PNG", b"\x89PNG")])

    assert [f.file_type for f in stored] == [".pdf", ".png"]
    assert _stored_names(upload_dir) == sorted(f.file_name for f in stored)


def test_rejected_upload_discards_earlier_files(storage, upload_dir):
    with pytest.raises(InvalidDocument):
        storage.save_uploads([_upload("a.pdf"), _upload("b.exe")])

    assert _stored_names(upload_dir) == []


def test_io_error_discards_earlier_files(storage, upload_dir, monkeypatch):
    real_save = DocumentStorage.save_upload
    calls = []

    def failing_second_save(self, upload):
        calls.append(upload.filename)
        if len(calls) == 2:
            raise OSError("disk full")
        return real_save(self, upload)

    monkeypatch.setattr(DocumentStorage, "save_upload", failing_second_save)

    with pytest.raises(OSError):
        storage.save_uploads([_upload("a.pdf"), _upload("b.pdf")])

    assert calls == ["a.pdf", "b.pdf"]
    assert _stored_names(upload_dir) == []


def test_oversized_file_leaves_no_partial_copy(storage, upload_dir, monkeypatch):
    monkeypatch.setattr(settings, "max_document_size", 4)

    with pytest.raises(DocumentTooLarge):
        storage.save_uploads([_upload("big.pdf", b"0123456789")])

    assert _stored_names(upload_dir) == []


def test_too_many_files(storage, monkeypatch):
    monkeypatch.setattr(settings, "max_documents_per_request", 1)

    with pytest.raises(InvalidDocument):
        storage.save_uploads([_upload("a.pdf"), _upload("b.pdf")])
