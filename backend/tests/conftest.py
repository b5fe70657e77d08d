import os

# Point the module-level engine at SQLite before brandkb is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BLOB_BACKEND", "local")

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from brandkb.models import Base, Brand
from brandkb.services.storage import LocalBlobStore


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def brand(db):
    brand = Brand(name="Acme", domain="acme.test", competitors=["rival.test"])
    db.add(brand)
    db.commit()
    return brand


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(str(tmp_path / "blobs"))


def mock_client_factory(handler):
    """AsyncClient factory whose requests are answered by ``handler``."""
    def factory():
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    return factory
