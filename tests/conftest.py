"""
Shared fixtures: a fresh sqlite database per test and a clean
metrics collector.
"""

import pytest

from src.pm_dojo.core.db import get_connection, init_db
from src.pm_dojo.core.metrics import get_metrics


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "pm_dojo_test.db"


@pytest.fixture
def conn(db_path):
    connection = get_connection(db_path)
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics().reset()
    yield
