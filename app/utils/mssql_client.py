"""
SQL Server client used to apply backups.

Provides:
- Connection management (one connection per unit of work)
- RESTORE helpers for full and transaction-log backups
- Error handling
"""

import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import pyodbc
from loguru import logger

from app.utils.config import Settings
from app.utils.helpers import format_duration
from domains.log_shipping.exceptions import RestoreConnectionError, RestoreError


def quote_identifier(name: str) -> str:
    """Bracket-quote a SQL Server identifier."""
    return "[" + name.replace("]", "]]") + "]"


def quote_literal(value: str) -> str:
    """Quote a SQL Server string literal."""
    return "N'" + value.replace("'", "''") + "'"


class RestoreSession:
    """An open connection able to restore backups into one database."""

    def __init__(self, connection, database: str):
        self.connection = connection
        self.database = database

    def restore_full(self, backup_path: Path):
        """Restore a full backup, leaving the database in NORECOVERY."""
        query = (
            f"RESTORE DATABASE {quote_identifier(self.database)} "
            f"FROM DISK={quote_literal(str(backup_path))} WITH NORECOVERY, REPLACE"
        )
        logger.info(f"Starting full restore of '{backup_path}'...")
        self._execute(query)

    def restore_log(self, log_path: Path):
        """Restore a single transaction-log backup with NORECOVERY."""
        query = (
            f"RESTORE LOG {quote_identifier(self.database)} "
            f"FROM DISK={quote_literal(str(Path(log_path).absolute()))} WITH NORECOVERY"
        )
        logger.info(f"Starting log restore of '{log_path}'...")
        self._execute(query)

    def _execute(self, query: str):
        started = time.perf_counter()
        cursor = self.connection.cursor()
        try:
            cursor.execute(query)
            # RESTORE reports progress as extra result sets; errors can
            # surface in any of them.
            while cursor.nextset():
                pass
        except pyodbc.Error as e:
            logger.error(f"Error executing...\n'{query}'\n{e}")
            raise RestoreError(str(e), query=query) from e
        finally:
            cursor.close()

        logger.debug(f"Query...\n'{query}'\nTook {format_duration(time.perf_counter() - started)}")


class MSSQLClient:
    """SQL Server client that hands out short-lived restore sessions."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 1433,
        database: str = "",
        user: str = "",
        password: str = "",
        driver: str = "ODBC Driver 18 for SQL Server",
        connection_string: Optional[str] = None,
        trust_server_certificate: bool = True,
        login_timeout: int = 30,
    ):
        """Initialize SQL Server client."""
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.driver = driver
        self.connection_string = connection_string
        self.trust_server_certificate = trust_server_certificate
        self.login_timeout = login_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "MSSQLClient":
        """Build a client from application settings."""
        return cls(
            host=settings.sql_host,
            port=settings.sql_port,
            database=settings.sql_db,
            user=settings.sql_user,
            password=settings.sql_pass,
            driver=settings.sql_driver,
            connection_string=settings.sql_connection_string,
            trust_server_certificate=settings.sql_trust_server_certificate,
            login_timeout=settings.sql_login_timeout,
        )

    def build_connection_string(self) -> str:
        """
        Build the ODBC connection string.

        RESTORE cannot run while connected to the target database, so the
        generated string always connects to ``master``.

        Returns:
            ODBC connection string
        """
        if self.connection_string:
            return self.connection_string

        password = self.password.replace("}", "}}")
        parts = [
            f"DRIVER={{{self.driver}}}",
            f"SERVER={self.host},{self.port}",
            "DATABASE=master",
            f"UID={self.user}",
            f"PWD={{{password}}}",
        ]
        if self.trust_server_certificate:
            parts.append("TrustServerCertificate=yes")
        return ";".join(parts) + ";"

    def connect(self):
        """Open a new autocommit connection."""
        logger.debug(f"Connecting to SQL Server at {self.host},{self.port}...")
        try:
            # RESTORE is not allowed inside a user transaction
            return pyodbc.connect(
                self.build_connection_string(),
                autocommit=True,
                timeout=self.login_timeout,
            )
        except pyodbc.Error as e:
            logger.error(f"Error getting connection to SQL Server at {self.host},{self.port}: {e}")
            raise RestoreConnectionError(str(e)) from e

    @contextmanager
    def session(self) -> Iterator[RestoreSession]:
        """Context manager for a restore session on a fresh connection."""
        connection = self.connect()
        try:
            yield RestoreSession(connection, self.database)
        finally:
            connection.close()
