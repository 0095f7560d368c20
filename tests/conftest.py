from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import turnjob.db as turnjob_db


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    db_file = tmp_path / "test_turnjob.db"
    db_url = f"sqlite:///{db_file}"
    monkeypatch.setenv("DATABASE_URL", db_url)

    # Rebuild DB bindings per test so every test gets its own writable SQLite file.
    turnjob_db.engine.dispose()
    turnjob_db.DATABASE_URL = turnjob_db.get_database_url()
    turnjob_db.engine = create_engine(
        turnjob_db.DATABASE_URL,
        connect_args={"check_same_thread": False},
        pool_pre_ping=True,
    )
    turnjob_db.SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=turnjob_db.engine,
        expire_on_commit=False,
    )

    turnjob_db.Base.metadata.drop_all(bind=turnjob_db.engine)
    turnjob_db.Base.metadata.create_all(bind=turnjob_db.engine)
    yield
    turnjob_db.Base.metadata.drop_all(bind=turnjob_db.engine)
    turnjob_db.engine.dispose()


@pytest.fixture
def db_session():
    session = turnjob_db.SessionLocal()
    try:
        yield session
    finally:
        session.close()
