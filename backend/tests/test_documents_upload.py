from __future__ import annotations

import asyncio
import io
from pathlib import Path

import pytest
from fastapi import HTTPException, UploadFile

from opstracker.routers import documents


def _upload(filename: str | None, content: bytes = b"data") -> UploadFile:
    return UploadFile(file=io.BytesIO(content), filename=filename)


@pytest.mark.parametrize("filename", ["site-plan.PDF", "photo.jpg", "budget.final.xlsx"])
def test_validate_upload_accepts_allowed_extensions(filename: str) -> None:
    assert documents._validate_upload(_upload(filename)) == filename.rsplit(".", 1)[-1].lower()


@pytest.mark.parametrize(
    ("filename", "detail"),
    [
        ("", "Filename is required"),
        ("README", "File extension is required"),
    ],
)
def test_validate_upload_requires_name_and_extension(filename: str, detail: str) -> None:
    with pytest.raises(HTTPException) as exc:
        documents._validate_upload(_upload(filename))

    assert exc.value.status_code == 400
    assert exc.value.detail == detail


def test_validate_upload_rejects_disallowed_extension() -> None:
    with pytest.raises(HTTPException) as exc:
        documents._validate_upload(_upload("payload.exe"))

    assert exc.value.status_code == 400
    assert exc.value.detail.startswith("File type not allowed")


def test_stream_save_writes_file_and_reports_size(tmp_path: Path) -> None:
    dest = tmp_path / "plan.pdf"

    size = asyncio.run(documents._stream_save_upload(file=_upload("plan.pdf", b"x" * 2048), dest_path=dest))

    assert size == 2048
    assert dest.read_bytes() == b"x" * 2048


def test_stream_save_enforces_size_limit_and_removes_partial_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(documents.settings, "MAX_UPLOAD_SIZE", 10)
    dest = tmp_path / "big.pdf"

    with pytest.raises(HTTPException) as exc:
        asyncio.run(documents._stream_save_upload(file=_upload("big.pdf", b"y" * 64), dest_path=dest))

    assert exc.value.status_code == 413
    assert not dest.exists()


def test_stream_save_refuses_to_overwrite(tmp_path: Path) -> None:
    dest = tmp_path / "taken.pdf"
    dest.write_bytes(b"original")

    with pytest.raises(HTTPException) as exc:
        asyncio.run(documents._stream_save_upload(file=_upload("taken.pdf"), dest_path=dest))

    assert exc.value.status_code == 409
    assert dest.read_bytes() == b"original"
