"""Fixtures partagées : moteur SQLite en mémoire, store, application."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

import models  # noqa: F401
from app import create_app
from repository import CodeStore
from settings import Settings

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine):
    return CodeStore(engine)


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        admin_tokens=(ADMIN_TOKEN,),
        nonce_secret="test-nonce-secret",
        log_level="WARNING",
    )


@pytest.fixture
def app(settings, engine):
    return create_app(settings, engine=engine)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
