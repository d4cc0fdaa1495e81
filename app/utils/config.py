"""
Configuration management for the log shipper.

Uses pydantic-settings to load configuration from environment variables
and an env-style configuration file (``--conf``). Keys can be given by field
name (``BACKUP_DIR``) or by the camelCase names of older ``.properties``
configs (``backupDir``).
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_LOG_BACKUP_PATTERN = r"(?:[\w_-]+?)(\d+)\.trn"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Backup Locations
    backup_dir: str = Field("", validation_alias=AliasChoices("backup_dir", "backupDir"))
    full_backup_path: str = Field("", validation_alias=AliasChoices("full_backup_path", "fullBackupPath"))
    full_backup_pattern: str = Field(
        r"(?:[\w_-]+?)(\d+)\.bak",
        validation_alias=AliasChoices("full_backup_pattern", "fullBackupPattern"),
    )
    full_backup_date_pattern: str = Field(
        "yyyyMMddHHmm",
        validation_alias=AliasChoices("full_backup_date_pattern", "fullBackupDatePattern"),
    )
    log_backup_pattern: str = Field(
        DEFAULT_LOG_BACKUP_PATTERN,
        validation_alias=AliasChoices("log_backup_pattern", "logBackupPattern"),
    )
    log_backup_date_pattern: str = Field(
        "yyyyMMddHHmmss",
        validation_alias=AliasChoices("log_backup_date_pattern", "logBackupDatePattern"),
    )

    # Ordering / Cutoff
    later_than: str = Field("", validation_alias=AliasChoices("later_than", "laterThan"))
    use_log_file_last_mod: bool = Field(
        False,
        validation_alias=AliasChoices("use_log_file_last_mod", "useLogFileLastMode"),
    )

    # Run Modes
    do_full_restore: bool = False
    monitor_backup_dir: bool = Field(False, validation_alias=AliasChoices("monitor_backup_dir", "monitorBackupDir"))

    # SQL Server Configuration
    sql_host: str = Field("127.0.0.1", validation_alias=AliasChoices("sql_host", "sqlHost"))
    sql_port: int = 1433
    sql_db: str = Field("", validation_alias=AliasChoices("sql_db", "sqlDb"))
    sql_user: str = Field("", validation_alias=AliasChoices("sql_user", "sqlUser"))
    sql_pass: str = Field("", validation_alias=AliasChoices("sql_pass", "sqlPass"))
    sql_driver: str = "ODBC Driver 18 for SQL Server"
    sql_connection_string: Optional[str] = None
    sql_trust_server_certificate: bool = True
    sql_login_timeout: int = 30
    sql_process_user: str = Field("", validation_alias=AliasChoices("sql_process_user", "sqlProcessUser"))

    # Watcher Configuration
    watch_poll_interval: float = 1.0  # seconds
    watch_queue_size: int = 10000

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore"
    )

    def get_backup_dir(self) -> Optional[Path]:
        """Backup directory with ``~`` expanded, or None when blank."""
        if not self.backup_dir.strip():
            return None
        return Path(self.backup_dir.strip()).expanduser()

    def get_full_backup_path(self) -> Optional[Path]:
        """Full backup artifact with ``~`` expanded, or None when blank."""
        if not self.full_backup_path.strip():
            return None
        return Path(self.full_backup_path.strip()).expanduser()


@lru_cache()
def get_settings(env_file: Optional[str] = None) -> Settings:
    """Get cached settings instance, optionally read from ``env_file``."""
    if env_file:
        return Settings(_env_file=env_file)
    return Settings()
