"""Database connection and schema management."""

import duckdb
from contextlib import contextmanager
from typing import Iterator, Optional
from pathlib import Path
from ..exceptions import StorageError
from ..utils.logger import get_app_logger


class DatabaseConnection:
    """DuckDB connection manager."""

    def __init__(self, db_path: str = "./data/chatrelay.db"):
        """
        Initialize database connection.

        Args:
            db_path: Path to DuckDB database file, or ":memory:"
        """
        self.db_path = db_path
        self.logger = get_app_logger("db")
        self.conn: Optional[duckdb.DuckDBPyConnection] = None

        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connect()
        self._init_schema()

    def _connect(self):
        """Connect to DuckDB database."""
        try:
            self.conn = duckdb.connect(self.db_path)
            self.logger.info(f"Connected to DuckDB at {self.db_path}")
        except duckdb.Error as e:
            self.logger.error(f"Failed to connect to DuckDB: {e}")
            raise StorageError(f"Failed to connect to database: {e}") from e

    def _init_schema(self):
        """Initialize database schema."""
        try:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    id VARCHAR PRIMARY KEY,
                    user_name VARCHAR NOT NULL,
                    user_email VARCHAR NOT NULL,
                    user_phone VARCHAR,
                    page_title VARCHAR,
                    last_message VARCHAR,
                    status VARCHAR NOT NULL DEFAULT 'open',
                    created_at TIMESTAMP NOT NULL
                )
            """)

            # conversation_id is checked by the message store inside the
            # append transaction rather than by a foreign key constraint
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id VARCHAR PRIMARY KEY,
                    seq BIGINT NOT NULL,
                    conversation_id VARCHAR NOT NULL,
                    content VARCHAR NOT NULL,
                    sender_type VARCHAR NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
            """)

            self.conn.execute("CREATE SEQUENCE IF NOT EXISTS messages_seq START 1")

            self.conn.execute("CREATE INDEX IF NOT EXISTS idx_conversations_created ON conversations(created_at)")
            self.conn.execute("CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id)")

            self.logger.info("Database schema initialized successfully")

        except duckdb.Error as e:
            self.logger.error(f"Failed to initialize database schema: {e}")
            raise StorageError(f"Failed to initialize schema: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """
        Run a block of statements atomically.

        Commits when the block exits normally, rolls back and re-raises
        otherwise.
        """
        self.conn.begin()
        try:
            yield self.conn
        except BaseException:
            self.conn.rollback()
            self.logger.debug("Transaction rolled back")
            raise
        else:
            self.conn.commit()

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.logger.info("Database connection closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
