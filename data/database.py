"""
SQL Server Document Store

This module implements the DocumentStore protocol on a SQL Server table via
pyodbc, for deployments that keep posts in the database instead of
Firestore. It handles the connection, query execution and the mapping
between record fields and table columns.
"""

import threading
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

import pyodbc

from config import settings
from data.protocols import RawRecord
from utils.exceptions import NetworkError, StoreWriteError, StoreReadError
from utils.logger import get_logger

logger = get_logger(__name__)

# Record field -> column
FIELD_COLUMNS = {
    "body": "Body",
    "createdAt": "Created_At",
    "username": "Username",
    "userId": "User_ID",
    "photo": "Photo",
}
ID_COLUMN = "Post_ID"

CREATE_POSTS_TABLE = """
IF OBJECT_ID(N'[dbo].[{table}]', N'U') IS NULL
CREATE TABLE [dbo].[{table}] (
    [Post_ID] UNIQUEIDENTIFIER NOT NULL DEFAULT NEWID() PRIMARY KEY,
    [Body] NVARCHAR(180) NOT NULL,
    [Created_At] DATETIME2 NOT NULL,
    [Username] NVARCHAR(256) NULL,
    [User_ID] NVARCHAR(128) NOT NULL,
    [Photo] NVARCHAR(2048) NULL
);
"""


def _to_db_value(value: Any) -> Any:
    # DATETIME2 has no offset; rows are kept in UTC
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class SqlServerDocumentStore:
    """DocumentStore backed by SQL Server tables, one table per collection."""

    def __init__(self, connection_string: Optional[str] = None, tables: Optional[Dict[str, str]] = None):
        """
        Initialize the database store.

        Args:
            connection_string: ODBC connection string (defaults to settings.DB_CONNECTION_STRING).
            tables: Collection name -> table name.
        """
        self.connection_string = connection_string or settings.DB_CONNECTION_STRING
        self.tables = tables or {settings.POSTS_COLLECTION: settings.POSTS_TABLE}
        self.conn = None
        self._lock = threading.Lock()
        pyodbc.pooling = False

    def connect(self) -> bool:
        """
        Establish a connection to the database.

        Returns:
            bool: True if connection was successful, False otherwise.
        """
        try:
            self.conn = pyodbc.connect(self.connection_string)
            self.conn.setdecoding(pyodbc.SQL_CHAR, encoding='utf-8')
            logger.info("Successfully connected to database")
            return True
        except pyodbc.Error as e:
            logger.error(f"Failed to connect to database: {e}")
            self.conn = None
            return False

    def close(self) -> None:
        """Close the database connection."""
        try:
            if self.conn:
                self.conn.close()
                logger.info("Database connection closed")
        except pyodbc.Error as e:
            logger.error(f"Error closing database connection: {e}")
        finally:
            self.conn = None

    def _table(self, collection: str, error_cls) -> str:
        table = self.tables.get(collection)
        if not table:
            raise error_cls(f"No table is mapped to collection {collection!r}")
        return f"[dbo].[{table}]"

    def _execute(self, query: str, params: tuple = ()):
        """Run one statement and commit, returning the cursor. Caller holds the lock."""
        if not self.conn and not self.connect():
            raise NetworkError("Database connection is not available")
        cursor = self.conn.cursor()
        try:
            cursor.execute(query, params)
            return cursor
        except pyodbc.Error:
            try:
                self.conn.rollback()
            except pyodbc.Error:
                logger.warning("Rollback failed after query error")
            raise

    def ensure_schema(self) -> None:
        """Create the tables of every mapped collection if they do not exist."""
        with self._lock:
            for table in self.tables.values():
                try:
                    self._execute(CREATE_POSTS_TABLE.format(table=table))
                    self.conn.commit()
                except (pyodbc.Error, NetworkError) as e:
                    raise StoreWriteError(f"Could not create table {table}: {e}") from e

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        table = self._table(collection, StoreWriteError)
        columns = [FIELD_COLUMNS[field] for field in data if field in FIELD_COLUMNS]
        values = tuple(_to_db_value(data[field]) for field in data if field in FIELD_COLUMNS)
        query = (
            f"INSERT INTO {table} ({', '.join(f'[{c}]' for c in columns)}) "
            f"OUTPUT INSERTED.[{ID_COLUMN}] "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )

        with self._lock:
            try:
                cursor = self._execute(query, values)
                row = cursor.fetchone()
                self.conn.commit()
            except (pyodbc.Error, NetworkError) as e:
                raise StoreWriteError(f"Could not add record to {collection}: {e}") from e

        if not row or row[0] is None:
            raise StoreWriteError(f"Database did not return an id for the new {collection} record")

        record_id = str(row[0]).lower()
        logger.debug(f"Inserted {collection} record {record_id}")
        return record_id

    def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        table = self._table(collection, StoreWriteError)
        unknown = [field for field in fields if field not in FIELD_COLUMNS]
        if unknown:
            raise StoreWriteError(f"Unknown fields for {collection}: {', '.join(unknown)}")

        assignments = ", ".join(f"[{FIELD_COLUMNS[field]}] = ?" for field in fields)
        params = tuple(_to_db_value(value) for value in fields.values()) + (record_id,)
        query = f"UPDATE {table} SET {assignments} WHERE [{ID_COLUMN}] = ?"

        with self._lock:
            try:
                cursor = self._execute(query, params)
                updated = cursor.rowcount
                self.conn.commit()
            except (pyodbc.Error, NetworkError) as e:
                raise StoreWriteError(f"Could not update {collection}/{record_id}: {e}") from e

        if updated == 0:
            raise StoreWriteError(f"No record {record_id} in {collection}")

    def delete(self, collection: str, record_id: str) -> None:
        table = self._table(collection, StoreWriteError)
        query = f"DELETE FROM {table} WHERE [{ID_COLUMN}] = ?"

        with self._lock:
            try:
                cursor = self._execute(query, (record_id,))
                deleted = cursor.rowcount
                self.conn.commit()
            except (pyodbc.Error, NetworkError) as e:
                raise StoreWriteError(f"Could not delete {collection}/{record_id}: {e}") from e

        if deleted == 0:
            logger.warning(f"Delete of {collection}/{record_id} matched no rows")

    def query(self, collection: str, order_by: str, descending: bool = False) -> List[RawRecord]:
        table = self._table(collection, StoreReadError)
        column = FIELD_COLUMNS.get(order_by)
        if not column:
            raise StoreReadError(f"Cannot order {collection} by unknown field {order_by!r}")

        select = ", ".join([f"[{ID_COLUMN}]"] + [f"[{c}]" for c in FIELD_COLUMNS.values()])
        query = f"SELECT {select} FROM {table} ORDER BY [{column}] {'DESC' if descending else 'ASC'}"

        with self._lock:
            try:
                cursor = self._execute(query)
                columns = [desc[0] for desc in cursor.description]
                rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
            except (pyodbc.Error, NetworkError) as e:
                raise StoreReadError(f"Could not query {collection}: {e}") from e

        records = []
        for row in rows:
            data = {field: row.get(col) for field, col in FIELD_COLUMNS.items()}
            if data.get("photo") is None:
                del data["photo"]
            records.append((str(row.get(ID_COLUMN)).lower(), data))

        logger.debug(f"Fetched {len(records)} records from {collection}")
        return records
