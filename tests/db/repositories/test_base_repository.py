"""Tests for BaseRepository."""

from unittest.mock import MagicMock

from chatrelay.db.repositories.base import BaseRepository
from chatrelay.exceptions import StorageError


class TestBaseRepository:
    """Tests for BaseRepository."""

    class TestInit:
        """SUT: BaseRepository.__init__"""

        def test_stores_conn(self):
            """conn attribute should be correctly assigned."""
            mock_conn = MagicMock()
            repo = BaseRepository(mock_conn)
            assert repo.conn is mock_conn

        def test_has_logger(self):
            """logger attribute should exist."""
            repo = BaseRepository(MagicMock())
            assert repo.logger is not None

    class TestFail:
        """SUT: BaseRepository._fail"""

        def test_wraps_cause(self):
            """_fail() should build a StorageError carrying the driver message."""
            repo = BaseRepository(MagicMock())
            error = repo._fail("do a thing", ValueError("driver said no"))
            assert isinstance(error, StorageError)
            assert error.error_code == "STORAGE_ERROR"
            assert error.details["cause"] == "driver said no"
            assert "do a thing" in error.message
