"""SQLAlchemy models (2.x style) for the employee records schema."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# Document columns, in the order the form presents them.
DOCUMENT_FIELDS: tuple[str, ...] = (
    "doc_ktp",
    "doc_sk_pangkat",
    "doc_sk_berkala",
    "doc_sk_jabatan",
)

CATEGORY_ASN = "ASN"
CATEGORY_P3K = "P3K"
CATEGORIES: tuple[str, ...] = (CATEGORY_ASN, CATEGORY_P3K)


class Employee(Base):
    """Employees table. One row per person."""
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    nip: Mapped[str | None] = mapped_column(Text, unique=True)
    position: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    division: Mapped[str] = mapped_column(Text, nullable=False)
    education: Mapped[str | None] = mapped_column(Text)
    religion: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(Text)

    # Generated filenames inside the upload directory, not the files themselves
    doc_ktp: Mapped[str | None] = mapped_column(Text)
    doc_sk_pangkat: Mapped[str | None] = mapped_column(Text)
    doc_sk_berkala: Mapped[str | None] = mapped_column(Text)
    doc_sk_jabatan: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.current_timestamp(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_employees_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Employee {self.id} {self.name!r}>"
