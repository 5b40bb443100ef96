"""Shared fixtures: a throwaway database and upload directory per test."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from kepegawaian.api import create_app
from kepegawaian.config import DatabaseSettings, Environment, LoggingSettings, Settings, UploadSettings
from kepegawaian.db import create_engine, create_session_maker
from kepegawaian.migrations import bootstrap_schema
from kepegawaian.store import EmployeeForm, EmployeeStore

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment=Environment.TESTING,
        db=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'kepegawaian.db'}"),
        uploads=UploadSettings(dir=tmp_path / "uploads"),
        logging=LoggingSettings(level="WARNING", format="text"),
        frontend_dist=tmp_path / "dist",
    )


@pytest.fixture
async def engine(settings):
    engine = create_engine(settings.db)
    yield engine
    await engine.dispose()


@pytest.fixture
async def store(engine) -> EmployeeStore:
    await bootstrap_schema(engine)
    return EmployeeStore(create_session_maker(engine))


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


def make_form(**overrides) -> EmployeeForm:
    values = {
        "name": "Budi Santoso",
        "nip": "198501012010011001",
        "position": "Analis Kebijakan",
        "category": "ASN",
        "division": "Sekretariat",
        "education": "S1",
        "religion": "Islam",
        "phone": "081234567890",
        "email": "budi@example.go.id",
    }
    values.update(overrides)
    return EmployeeForm(**values)


def form_data(**overrides) -> dict[str, str]:
    """Multipart text fields as the dashboard sends them."""
    data = {
        "name": "Budi Santoso",
        "nip": "198501012010011001",
        "position": "Analis Kebijakan",
        "category": "ASN",
        "division": "Sekretariat",
        "education": "S1",
        "religion": "Islam",
        "phone": "081234567890",
        "email": "budi@example.go.id",
    }
    data.update(overrides)
    return {k: v for k, v in data.items() if v is not None}


def pdf_file(name: str = "dokumen.pdf", content: bytes = PDF_BYTES, content_type: str = "application/pdf"):
    return (name, content, content_type)
