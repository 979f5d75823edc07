from __future__ import annotations

import os
import pathlib
import sys
import tempfile
from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

_DB_DIR = tempfile.mkdtemp(prefix="blueedge-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{pathlib.Path(_DB_DIR) / 'test.db'}"

from blueedge.db.session import SessionLocal, engine
from blueedge.main import app
from blueedge.models import Chat, Chunk, Document, Message
from blueedge.models.base import Base


@pytest.fixture(scope="session", autouse=True)
def create_schema() -> Iterator[None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="session")
def client(create_schema) -> Iterator[TestClient]:
    """Provide a FastAPI TestClient instance."""
    with TestClient(app) as _client:
        yield _client


@pytest.fixture()
def db() -> Iterator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_document(db) -> Callable[..., Document]:
    def _make(title: str = "notes.txt", content: str = "Plain text body.", **overrides) -> Document:
        document = Document(
            title=title,
            content=content,
            markdown=overrides.pop("markdown", f"# {title}\n\n{content}"),
            metadata_=overrides.pop("metadata_", {"fileType": title.rsplit(".", 1)[-1]}),
            **overrides,
        )
        db.add(document)
        db.commit()
        db.refresh(document)
        return document

    return _make


@pytest.fixture(autouse=True)
def cleanup_database() -> Iterator[None]:
    """Delete all rows after every test to keep isolation."""
    yield
    SessionLocal.remove()
    with SessionLocal() as session:
        for model in (Message, Chat, Chunk, Document):
            session.query(model).delete()
        session.commit()
    SessionLocal.remove()
