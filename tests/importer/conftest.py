from __future__ import annotations

import pytest

from recovery_app.importer.adapters import RecordLoader
from recovery_app.importer.contracts import SessionMeta
from recovery_app.importer.pipeline.recovery_service import ErrorRecoveryService
from recovery_app.importer.pipeline.recovery_store import RecoverySessionStore


class CountingLoader(RecordLoader):
    """Record loader that counts how often a source is loaded."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = 0

    def load(self, meta):
        self.calls += 1
        return super().load(meta)


def _make_meta(session_id: str = "import_fixture", *, file_path=None, file_name="products.csv", user_id=1):
    return SessionMeta(
        session_id=session_id,
        user_id=user_id,
        file_path=str(file_path) if file_path is not None else None,
        file_name=file_name,
        status="previewed",
    )


@pytest.fixture
def loader():
    record_loader = CountingLoader(timeout_seconds=5.0)
    yield record_loader
    record_loader.close()


@pytest.fixture
def store(loader):
    session_store = RecoverySessionStore(loader)
    yield session_store
    session_store.shutdown()


@pytest.fixture
def service(store):
    return ErrorRecoveryService(store)


@pytest.fixture
def make_meta():
    """Factory for import session metadata handed to the recovery engine."""
    return _make_meta


@pytest.fixture
def fixture_meta():
    """Import session without a source file, so the fixture dataset is used."""
    return _make_meta()
