import os
_default_test_secret = "test-jwt-secret-for-pytest-only-0000000000000000"
if len(os.environ.get("JWT_SECRET", "")) < 32:
    os.environ["JWT_SECRET"] = _default_test_secret
os.environ.setdefault("ENV", "test")
os.environ.setdefault("OUTBOX_WORKER_ENABLED", "false")

import subprocess
from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url

TEST_DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./shift_timesheets_test.db")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from app import database
import app.models  # noqa: F401
from app.core.authorization import Actor, Role
from app.models.assigned_personnel import AssignedPersonnel
from app.models.client import Client
from app.models.crew_chief_permission import CrewChiefPermission
from app.models.job import Job
from app.models.shift import Shift

COMPANY_ID = 1


def _is_postgres_url(database_url: str) -> bool:
    return make_url(database_url).drivername.startswith("postgresql")


def _ensure_database_exists(database_url: str) -> None:
    url = make_url(database_url)

    if not url.drivername.startswith("postgresql"):
        return

    db_name = url.database
    admin_url = url.set(database="postgres")
    admin_engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")

    try:
        with admin_engine.connect() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": db_name},
            ).scalar()
            if not exists:
                safe_db_name = db_name.replace('"', '""')
                conn.execute(text(f'CREATE DATABASE "{safe_db_name}"'))
    finally:
        admin_engine.dispose()


@pytest.fixture(scope="session", autouse=True)
def _prepare_test_database() -> None:
    database.configure_database()

    if _is_postgres_url(TEST_DATABASE_URL):
        _ensure_database_exists(TEST_DATABASE_URL)

        env = os.environ.copy()
        env["DATABASE_URL"] = TEST_DATABASE_URL

        subprocess.run(
            ["alembic", "upgrade", "head"],
            check=True,
            cwd=Path(__file__).resolve().parents[2],
            env=env,
        )
    else:
        database.Base.metadata.drop_all(bind=database.engine)
        database.Base.metadata.create_all(bind=database.engine)


def _wipe_tables() -> None:
    with database.engine.begin() as conn:
        if _is_postgres_url(TEST_DATABASE_URL):
            rows = conn.execute(
                text(
                    """
                    SELECT tablename
                    FROM pg_tables
                    WHERE schemaname = 'public'
                      AND tablename <> 'alembic_version'
                    """
                )
            ).fetchall()

            table_names = [row[0] for row in rows]
            if table_names:
                quoted = ", ".join([f'"public"."{name}"' for name in table_names])
                conn.execute(text(f"TRUNCATE TABLE {quoted} RESTART IDENTITY CASCADE"))
        else:
            for table in reversed(database.Base.metadata.sorted_tables):
                conn.execute(table.delete())


@pytest.fixture(scope="function", autouse=True)
def _truncate_tables_between_tests():
    _wipe_tables()
    yield
    _wipe_tables()


def _persist(row):
    db = database.SessionLocal()
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    finally:
        db.close()


@pytest.fixture
def client_factory():
    def _make(company_id: int = COMPANY_ID, company_name: str = "Acme Events", contact_email=None) -> Client:
        return _persist(Client(company_id=company_id, company_name=company_name, contact_email=contact_email))

    return _make


@pytest.fixture
def job_factory(client_factory):
    def _make(company_id: int = COMPANY_ID, client_id: Optional[int] = None, name: str = "Stage build") -> Job:
        if client_id is None:
            client_id = client_factory(company_id=company_id).id
        return _persist(Job(company_id=company_id, client_id=client_id, name=name))

    return _make


@pytest.fixture
def shift_factory(job_factory):
    from datetime import date

    def _make(
        company_id: int = COMPANY_ID,
        job_id: Optional[int] = None,
        requested_workers: int = 2,
        crew_chief_user_id: Optional[str] = None,
    ) -> Shift:
        if job_id is None:
            job_id = job_factory(company_id=company_id).id
        return _persist(
            Shift(
                company_id=company_id,
                job_id=job_id,
                date=date(2026, 3, 14),
                requested_workers=requested_workers,
                crew_chief_user_id=crew_chief_user_id,
            )
        )

    return _make


@pytest.fixture
def assignment_factory():
    def _make(shift: Shift, employee_id: str, employee_name: Optional[str] = None, role_code: str = "GL"):
        return _persist(
            AssignedPersonnel(
                company_id=shift.company_id,
                shift_id=shift.id,
                employee_id=employee_id,
                employee_name=employee_name or employee_id,
                role_code=role_code,
            )
        )

    return _make


@pytest.fixture
def grant_factory():
    def _make(
        user_id: str,
        permission_type: str,
        target_id: int,
        company_id: int = COMPANY_ID,
        granted_by_user_id: str = "manager-1",
    ) -> CrewChiefPermission:
        return _persist(
            CrewChiefPermission(
                company_id=company_id,
                user_id=user_id,
                permission_type=permission_type,
                target_id=target_id,
                granted_by_user_id=granted_by_user_id,
            )
        )

    return _make


@pytest.fixture
def manager() -> Actor:
    return Actor(user_id="manager-1", company_id=COMPANY_ID, role=Role.MANAGER)


@pytest.fixture
def crew_chief() -> Actor:
    return Actor(user_id="chief-1", company_id=COMPANY_ID, role=Role.CREW_CHIEF)
