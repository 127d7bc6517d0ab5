"""
Tests for SQLite engine construction: foreign keys, BEGIN IMMEDIATE and the
write lock wait.
"""

import pytest
from sqlalchemy.exc import OperationalError

from ledger_kernel.db.engine import create_ledger_engine


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'engine.db'}"


class TestSqliteEngine:

    def test_busy_timeout_is_passed_to_connections(self, sqlite_url):
        engine = create_ledger_engine(sqlite_url, sqlite_busy_timeout=1.5)
        try:
            with engine.connect() as conn:
                assert conn.exec_driver_sql("PRAGMA busy_timeout").scalar() == 1500
                assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
        finally:
            engine.dispose()

    def test_default_wait_is_thirty_seconds(self, sqlite_url):
        engine = create_ledger_engine(sqlite_url)
        try:
            with engine.connect() as conn:
                assert conn.exec_driver_sql("PRAGMA busy_timeout").scalar() == 30000
        finally:
            engine.dispose()

    def test_second_writer_gives_up_after_busy_timeout(self, sqlite_url):
        engine = create_ledger_engine(sqlite_url, sqlite_busy_timeout=0.2)
        try:
            with engine.connect() as holder:
                holder.exec_driver_sql("SELECT 1")
                with engine.connect() as other:
                    with pytest.raises(OperationalError):
                        other.exec_driver_sql("SELECT 1")
        finally:
            engine.dispose()
