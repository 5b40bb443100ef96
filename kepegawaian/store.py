"""Record store for employee rows.

All reads and writes of the ``employees`` table go through ``EmployeeStore``.
One instance is built at application startup and injected into request
handlers.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Mapping

from sqlalchemy import delete, func, or_, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import CATEGORIES, CATEGORY_ASN, CATEGORY_P3K, DOCUMENT_FIELDS, Employee

logger = logging.getLogger(__name__)


DUPLICATE_NIP_ON_CREATE = "NIP sudah terdaftar. Silakan gunakan NIP lain atau kosongkan jika tidak ada."
DUPLICATE_NIP_ON_UPDATE = "NIP sudah terdaftar. Silakan gunakan NIP lain."


class ValidationError(Exception):
    """Raised when a record cannot be stored as submitted."""
    pass


class DuplicateNipError(ValidationError):
    """Raised when a NIP is already used by another employee."""
    pass


class EmployeeNotFoundError(Exception):
    """Raised when no employee has the requested id."""

    def __init__(self, employee_id: int):
        self.employee_id = employee_id
        super().__init__(f"Pegawai dengan id {employee_id} tidak ditemukan.")


REQUIRED_FIELDS = ("name", "position", "category", "division")


@dataclass
class EmployeeForm:
    """Submitted employee fields, excluding documents.

    Every field is present. Blank optional values are ``None``.
    """
    name: str
    position: str
    category: str
    division: str
    nip: str | None = None
    education: str | None = None
    religion: str | None = None
    phone: str | None = None
    email: str | None = None

    @classmethod
    def from_submitted(cls, data: Mapping[str, str | None]) -> EmployeeForm:
        """Build a form from raw submitted values.

        Raises:
            ValidationError: If a required field is missing or the category is unknown
        """
        cleaned = {}
        for field in fields(cls):
            value = data.get(field.name)
            if isinstance(value, str):
                value = value.strip()
            cleaned[field.name] = value or None

        missing = [name for name in REQUIRED_FIELDS if cleaned[name] is None]
        if missing:
            raise ValidationError(f"Kolom wajib belum diisi: {', '.join(missing)}")

        if cleaned["category"] not in CATEGORIES:
            raise ValidationError(
                f"Kategori tidak valid: {cleaned['category']}. Pilih {' atau '.join(CATEGORIES)}."
            )

        return cls(**cleaned)

    def column_values(self) -> dict[str, str | None]:
        values = {field.name: getattr(self, field.name) for field in fields(self)}
        # Empty NIP is stored as NULL so it never collides under UNIQUE
        if values["nip"] == "":
            values["nip"] = None
        return values


@dataclass
class EmployeeStats:
    total: int
    asn: int
    p3k: int


@dataclass
class DivisionShare:
    division: str
    count: int
    percentage: float


def _is_duplicate_nip(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "employees.nip" in message or "employees_nip_key" in message


class EmployeeStore:
    """Employee table operations over an async session factory."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def ping(self) -> None:
        async with self._session_maker() as session:
            await session.execute(text("SELECT 1"))

    async def list_all(
        self,
        *,
        search: str | None = None,
        category: str | None = None,
    ) -> list[Employee]:
        """List employees, newest first.

        Args:
            search: Case-insensitive substring of name or position, or substring of NIP
            category: Restrict to one category; ``None`` or ``"ALL"`` disables the filter

        Returns:
            Matching employees ordered by ``created_at`` descending
        """
        query = select(Employee)

        if search:
            term = search.strip()
            query = query.where(
                or_(
                    func.lower(Employee.name).contains(term.lower(), autoescape=True),
                    func.lower(Employee.position).contains(term.lower(), autoescape=True),
                    Employee.nip.contains(term, autoescape=True),
                )
            )

        if category and category.upper() != "ALL":
            query = query.where(Employee.category == category)

        query = query.order_by(Employee.created_at.desc(), Employee.id.desc())

        async with self._session_maker() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get(self, employee_id: int) -> Employee:
        async with self._session_maker() as session:
            employee = await session.get(Employee, employee_id)
        if employee is None:
            raise EmployeeNotFoundError(employee_id)
        return employee

    async def stats(self) -> EmployeeStats:
        """Count all employees and each category independently."""
        async with self._session_maker() as session:
            total = await session.scalar(select(func.count()).select_from(Employee))
            asn = await session.scalar(
                select(func.count()).select_from(Employee).where(Employee.category == CATEGORY_ASN)
            )
            p3k = await session.scalar(
                select(func.count()).select_from(Employee).where(Employee.category == CATEGORY_P3K)
            )
        return EmployeeStats(total=total or 0, asn=asn or 0, p3k=p3k or 0)

    async def division_breakdown(self) -> list[DivisionShare]:
        """Headcount per division with its share of all employees."""
        headcount = func.count(Employee.id).label("headcount")
        query = (
            select(Employee.division, headcount)
            .group_by(Employee.division)
            .order_by(headcount.desc(), Employee.division)
        )
        async with self._session_maker() as session:
            rows = (await session.execute(query)).all()

        total = sum(row.headcount for row in rows)
        return [
            DivisionShare(
                division=row.division,
                count=row.headcount,
                percentage=(row.headcount / total * 100) if total else 0.0,
            )
            for row in rows
        ]

    async def create(
        self,
        form: EmployeeForm,
        documents: Mapping[str, str] | None = None,
    ) -> int:
        """Insert a new employee.

        Args:
            form: Submitted employee fields
            documents: Generated filenames keyed by document field

        Returns:
            The new employee id

        Raises:
            DuplicateNipError: If the NIP is already registered
            ValidationError: If the database rejects the row
        """
        documents = documents or {}
        employee = Employee(
            **form.column_values(),
            **{field: documents.get(field) for field in DOCUMENT_FIELDS},
        )

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add(employee)
                    await session.flush()
                    employee_id = employee.id
        except IntegrityError as e:
            if _is_duplicate_nip(e):
                logger.warning(f"Rejected duplicate NIP on create: {form.nip}")
                raise DuplicateNipError(DUPLICATE_NIP_ON_CREATE) from e
            raise ValidationError(str(e.orig)) from e

        logger.info(f"Created employee {employee_id}: {form.name}")
        return employee_id

    async def update(
        self,
        employee_id: int,
        form: EmployeeForm,
        documents: Mapping[str, str] | None = None,
    ) -> Employee:
        """Overwrite an employee's fields.

        Every non-document column is replaced by the submitted value. A
        document column keeps its stored filename unless a new file was
        uploaded for it in this request.

        Raises:
            EmployeeNotFoundError: If no employee has this id
            DuplicateNipError: If the NIP belongs to another employee
            ValidationError: If the database rejects the row
        """
        documents = documents or {}

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    employee = await session.get(Employee, employee_id)
                    if employee is None:
                        raise EmployeeNotFoundError(employee_id)

                    for column, value in form.column_values().items():
                        setattr(employee, column, value)
                    for field in DOCUMENT_FIELDS:
                        if documents.get(field):
                            setattr(employee, field, documents[field])

                    await session.flush()
        except IntegrityError as e:
            if _is_duplicate_nip(e):
                logger.warning(f"Rejected duplicate NIP on update of {employee_id}: {form.nip}")
                raise DuplicateNipError(DUPLICATE_NIP_ON_UPDATE) from e
            raise ValidationError(str(e.orig)) from e

        logger.info(f"Updated employee {employee_id}")
        return employee

    async def delete(self, employee_id: int) -> bool:
        """Remove an employee. Returns whether a row existed.

        Uploaded documents stay in the upload directory.
        """
        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(delete(Employee).where(Employee.id == employee_id))

        removed = result.rowcount > 0
        if removed:
            logger.info(f"Deleted employee {employee_id}")
        return removed
