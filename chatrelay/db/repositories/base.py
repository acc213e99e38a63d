"""Base repository class."""

import duckdb
from ...exceptions import StorageError
from ...utils.logger import get_app_logger


class BaseRepository:
    """Base class for all repositories."""

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        """
        Initialize repository with database connection.

        Args:
            conn: DuckDB connection instance
        """
        self.conn = conn
        self.logger = get_app_logger("db")

    def _fail(self, action: str, error: Exception) -> StorageError:
        """Log a driver error and wrap it for the caller to raise."""
        self.logger.error(f"Failed to {action}: {error}")
        return StorageError(f"Failed to {action}", {"cause": str(error)})
