from datetime import datetime, timezone

import pytest

from app.utils.config import DEFAULT_LOG_BACKUP_PATTERN, Settings, get_settings
from domains.log_shipping.exceptions import ConfigurationError
from domains.log_shipping.models import OrderKeySource
from domains.log_shipping.run_config import build_run_config


def settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


def test_explicit_later_than(backup_dir):
    config = build_run_config(settings(backup_dir=str(backup_dir), later_than="2023-01-01T01:00:00Z"))

    assert config.backup_dir == backup_dir
    assert config.cutoff == datetime(2023, 1, 1, 1, 0, 0, tzinfo=timezone.utc)
    assert config.order_key_source is OrderKeySource.FROM_FILENAME
    assert config.log_pattern.pattern == DEFAULT_LOG_BACKUP_PATTERN
    assert not config.do_full_restore
    assert not config.monitor_backup_dir


def test_cutoff_derived_from_full_backup_name(backup_dir, tmp_path):
    full = tmp_path / "standby_202301010100.bak"
    full.write_bytes(b"TAPE")

    config = build_run_config(
        settings(backup_dir=str(backup_dir), full_backup_path=str(full), do_full_restore=True)
    )

    assert config.cutoff == datetime(2023, 1, 1, 1, 0, tzinfo=timezone.utc)
    assert config.full_backup_path.name == "standby_202301010100.bak"
    assert config.do_full_restore


def test_explicit_later_than_wins_over_full_backup_name(backup_dir, tmp_path):
    full = tmp_path / "standby_202301010100.bak"
    full.write_bytes(b"TAPE")

    config = build_run_config(
        settings(backup_dir=str(backup_dir), full_backup_path=str(full), later_than="2023-02-01T00:00:00Z")
    )

    assert config.cutoff == datetime(2023, 2, 1, tzinfo=timezone.utc)


def test_full_backup_name_without_timestamp_is_an_error(backup_dir, tmp_path):
    full = tmp_path / "standby.bak"
    full.write_bytes(b"TAPE")

    with pytest.raises(ConfigurationError):
        build_run_config(settings(backup_dir=str(backup_dir), full_backup_path=str(full)))


@pytest.mark.parametrize("later_than", ["", "last tuesday"])
def test_missing_or_unparseable_cutoff_is_an_error(backup_dir, later_than):
    with pytest.raises(ConfigurationError):
        build_run_config(settings(backup_dir=str(backup_dir), later_than=later_than))


def test_blank_backup_dir_is_an_error():
    with pytest.raises(ConfigurationError):
        build_run_config(settings(backup_dir="  ", later_than="2023-01-01T00:00:00Z"))


def test_missing_backup_dir_is_an_error(tmp_path):
    with pytest.raises(ConfigurationError):
        build_run_config(settings(backup_dir=str(tmp_path / "nope"), later_than="2023-01-01T00:00:00Z"))


def test_backup_dir_must_be_a_directory(tmp_path):
    not_a_dir = tmp_path / "file.trn"
    not_a_dir.write_bytes(b"TAPE")

    with pytest.raises(ConfigurationError):
        build_run_config(settings(backup_dir=str(not_a_dir), later_than="2023-01-01T00:00:00Z"))


def test_missing_full_backup_file_is_an_error(backup_dir, tmp_path):
    with pytest.raises(ConfigurationError):
        build_run_config(
            settings(
                backup_dir=str(backup_dir),
                full_backup_path=str(tmp_path / "gone_202301010100.bak"),
                later_than="2023-01-01T00:00:00Z",
            )
        )


def test_full_restore_requires_full_backup_path(backup_dir):
    with pytest.raises(ConfigurationError):
        build_run_config(
            settings(backup_dir=str(backup_dir), later_than="2023-01-01T00:00:00Z", do_full_restore=True)
        )


def test_blank_log_pattern_falls_back_to_default(backup_dir):
    config = build_run_config(
        settings(backup_dir=str(backup_dir), later_than="2023-01-01T00:00:00Z", log_backup_pattern=" ")
    )

    assert config.log_pattern.pattern == DEFAULT_LOG_BACKUP_PATTERN


def test_invalid_log_pattern_is_an_error(backup_dir):
    with pytest.raises(ConfigurationError):
        build_run_config(
            settings(backup_dir=str(backup_dir), later_than="2023-01-01T00:00:00Z", log_backup_pattern="(")
        )


def test_log_pattern_needs_date_group_unless_using_mtime(backup_dir):
    values = dict(backup_dir=str(backup_dir), later_than="2023-01-01T00:00:00Z", log_backup_pattern=r".*\.trn")

    with pytest.raises(ConfigurationError):
        build_run_config(settings(**values))

    config = build_run_config(settings(use_log_file_last_mod=True, **values))
    assert config.order_key_source is OrderKeySource.FROM_MODIFICATION_TIME


def test_unsupported_log_date_pattern_is_an_error(backup_dir):
    with pytest.raises(ConfigurationError):
        build_run_config(
            settings(
                backup_dir=str(backup_dir),
                later_than="2023-01-01T00:00:00Z",
                log_backup_date_pattern="yyyyMMddHHmmssSS",
            )
        )


def test_unsupported_full_backup_date_pattern_is_an_error(backup_dir, tmp_path):
    full = tmp_path / "standby_202301010100.bak"
    full.write_bytes(b"TAPE")

    with pytest.raises(ConfigurationError):
        build_run_config(
            settings(backup_dir=str(backup_dir), full_backup_path=str(full), full_backup_date_pattern="yyyyMMddhhmm")
        )


def test_settings_load_from_env_file(tmp_path, backup_dir):
    conf = tmp_path / "applylog.conf"
    conf.write_text(
        "\n".join([
            f"BACKUP_DIR={backup_dir}",
            "LATER_THAN=2023-01-01T01:00:00Z",
            "SQL_DB=standby",
            "MONITOR_BACKUP_DIR=true",
            "SOMETHING_UNKNOWN=ignored",
        ]),
        encoding="utf-8",
    )

    loaded = get_settings(str(conf))

    assert loaded.get_backup_dir() == backup_dir
    assert loaded.sql_db == "standby"
    assert loaded.monitor_backup_dir is True
    assert loaded.get_full_backup_path() is None
    assert get_settings(str(conf)) is loaded



def test_settings_accept_camel_case_property_names(tmp_path, backup_dir):
    conf = tmp_path / "applylog.properties"
    conf.write_text(
        "\n".join([
            f"backupDir={backup_dir}",
            "laterThan=2023-01-01T01:00:00Z",
            "logBackupDatePattern=yyyyMMddHHmmss",
            "sqlHost=db.local",
            "sqlDb=standby",
            "sqlProcessUser=mssql",
            "useLogFileLastMode=false",
            "monitorBackupDir=true",
        ]),
        encoding="utf-8",
    )

    loaded = get_settings(str(conf))
    config = build_run_config(loaded)

    assert config.backup_dir == backup_dir
    assert config.cutoff == datetime(2023, 1, 1, 1, 0, tzinfo=timezone.utc)
    assert config.monitor_backup_dir
    assert loaded.sql_host == "db.local"
    assert loaded.sql_db == "standby"
    assert loaded.sql_process_user == "mssql"


if __name__ == "__main__":  # pragma: no cover
    pytest.main([__file__])
