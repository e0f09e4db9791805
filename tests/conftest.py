from __future__ import annotations

import pytest

from zendb.db import create_sync_engine
from zendb.models.schema import metadata


@pytest.fixture
def engine(tmp_path):
    engine = create_sync_engine(f"sqlite:///{tmp_path / 'zendb.db'}")
    metadata.create_all(engine)
    yield engine
    engine.dispose()
