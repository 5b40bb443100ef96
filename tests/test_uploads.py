"""Upload storage: validation, naming, and writing to disk."""
from __future__ import annotations

import io
import re

import pytest
from starlette.datastructures import Headers, UploadFile

from kepegawaian.config import UploadSettings
from kepegawaian.uploads import (
    PDF_ONLY_MESSAGE,
    UnsupportedMediaTypeError,
    UploadError,
    UploadStorage,
    generate_filename,
)
from tests.conftest import PDF_BYTES


def make_upload(filename: str, content: bytes = PDF_BYTES, content_type: str = "application/pdf") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def storage(tmp_path) -> UploadStorage:
    storage = UploadStorage(UploadSettings(dir=tmp_path / "uploads", chunk_size=1024))
    storage.ensure_directory()
    return storage


def test_generated_filename_format():
    name = generate_filename("doc_ktp", "KTP Budi.PDF")
    assert re.fullmatch(r"doc_ktp-\d{13,}-\d{1,10}\.PDF", name)


def test_generated_filename_without_extension():
    assert re.fullmatch(r"doc_sk_jabatan-\d+-\d+", generate_filename("doc_sk_jabatan", "sk"))


def test_generated_filenames_differ():
    names = {generate_filename("doc_ktp", "a.pdf") for _ in range(50)}
    assert len(names) > 1


async def test_save_all_writes_files(storage):
    saved = await storage.save_all({
        "doc_ktp": [make_upload("ktp.pdf")],
        "doc_sk_berkala": [make_upload("berkala.pdf", content=PDF_BYTES * 100)],
        "doc_sk_jabatan": [make_upload("")],
    })

    assert set(saved) == {"doc_ktp", "doc_sk_berkala"}
    assert saved["doc_ktp"].startswith("doc_ktp-")
    assert saved["doc_ktp"].endswith(".pdf")
    assert (storage.base_path / saved["doc_ktp"]).read_bytes() == PDF_BYTES
    assert (storage.base_path / saved["doc_sk_berkala"]).read_bytes() == PDF_BYTES * 100


async def test_non_pdf_rejects_whole_request(storage):
    with pytest.raises(UnsupportedMediaTypeError) as excinfo:
        await storage.save_all({
            "doc_ktp": [make_upload("ktp.pdf")],
            "doc_sk_pangkat": [make_upload("catatan.txt", b"halo", "text/plain")],
        })

    assert excinfo.value.message == PDF_ONLY_MESSAGE
    assert excinfo.value.field == "doc_sk_pangkat"
    assert list(storage.base_path.iterdir()) == []


async def test_content_type_parameters_are_ignored(storage):
    saved = await storage.save_all({"doc_ktp": [make_upload("ktp.pdf", content_type="Application/PDF; charset=binary")]})
    assert "doc_ktp" in saved


async def test_pdf_extension_with_wrong_type_is_rejected(storage):
    with pytest.raises(UnsupportedMediaTypeError):
        await storage.save_all({"doc_ktp": [make_upload("ktp.pdf", content_type="application/octet-stream")]})


async def test_every_part_of_a_field_is_checked(storage):
    with pytest.raises(UnsupportedMediaTypeError):
        await storage.save_all({
            "doc_ktp": [make_upload("catatan.txt", b"halo", "text/plain"), make_upload("ktp.pdf")],
        })
    assert list(storage.base_path.iterdir()) == []


async def test_second_file_for_a_field_is_rejected(storage):
    with pytest.raises(UploadError) as excinfo:
        await storage.save_all({"doc_ktp": [make_upload("a.pdf"), make_upload("b.pdf")]})

    assert not isinstance(excinfo.value, UnsupportedMediaTypeError)
    assert excinfo.value.field == "doc_ktp"
    assert list(storage.base_path.iterdir()) == []


async def test_unknown_field_rejected(storage):
    with pytest.raises(UploadError) as excinfo:
        await storage.save_all({"doc_foto": [make_upload("foto.pdf")]})
    assert excinfo.value.field == "doc_foto"


async def test_blank_part_under_unknown_field_is_ignored(storage):
    assert await storage.save_all({"doc_foto": [make_upload("")]}) == {}


async def test_path_for_and_remove(storage):
    saved = await storage.save_all({"doc_ktp": [make_upload("ktp.pdf")]})
    filename = saved["doc_ktp"]

    assert storage.path_for(filename).read_bytes() == PDF_BYTES

    storage.remove([filename, "doc_ktp-0-0.pdf"])
    with pytest.raises(FileNotFoundError):
        storage.path_for(filename)


def test_path_for_refuses_traversal(storage, tmp_path):
    (tmp_path / "rahasia.pdf").write_bytes(PDF_BYTES)
    with pytest.raises(FileNotFoundError):
        storage.path_for("../rahasia.pdf")
