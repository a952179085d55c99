from pathlib import Path

import pytest

from clusterlog.config import (
    ClusterRoleSetting,
    LogFormat,
    LoggerSettings,
    SysLogProtocol,
    SysLogTransport,
    normalize_option_keys,
)
from clusterlog.exceptions import InvalidConfiguration


def test_normalize_option_keys():
    normalized = normalize_option_keys(
        {"appName": "billing", "fileLog": {"daysToKeep": 3}, "disableConsoleLog": True, "debug_level": 2}
    )
    assert normalized == {
        "app_name": "billing",
        "file_log": {"days_to_keep": 3},
        "disable_console": True,
        "debug_level": 2,
    }


class TestFromOptions:
    """Validation of caller supplied options."""

    def test_minimal_options(self):
        settings = LoggerSettings.from_options({"appName": "billing"})
        assert settings.app_name == "billing"
        assert settings.disable_console is False
        assert settings.file_log is None
        assert settings.sys_log is None
        assert settings.debug_level == 0
        assert settings.using_cluster is False
        assert settings.cluster.role is ClusterRoleSetting.AUTO
        assert settings.server_watchdog is None
        assert settings.shutdown_timeout == 10.0

    def test_nested_sink_options(self, tmp_path):
        settings = LoggerSettings.from_options(
            {
                "appName": "billing",
                "fileLog": {"dir": str(tmp_path), "daysToKeep": 3, "format": "json"},
                "sysLog": {"host": "logs.internal", "port": 6514, "transport": "tls", "protocol": 5424},
            }
        )
        assert settings.file_log.dir == Path(tmp_path)
        assert settings.file_log.days_to_keep == 3
        assert settings.file_log.format is LogFormat.JSON
        assert settings.sys_log.host == "logs.internal"
        assert settings.sys_log.port == 6514
        assert settings.sys_log.transport is SysLogTransport.TLS
        assert settings.sys_log.protocol is SysLogProtocol.RFC5424

    def test_defaults_for_empty_sink_sections(self):
        settings = LoggerSettings.from_options({"appName": "billing", "fileLog": {}, "sysLog": {}})
        assert settings.file_log.days_to_keep == 7
        assert settings.file_log.dir is None
        assert settings.sys_log.host == "127.0.0.1"
        assert settings.sys_log.port == 514
        assert settings.sys_log.transport is SysLogTransport.UDP
        assert settings.sys_log.protocol is SysLogProtocol.BSD

    def test_send_info_notifications_follows_syslog(self):
        assert LoggerSettings.from_options({"appName": "a"}).send_info_notifications is False
        settings = LoggerSettings.from_options({"appName": "a", "sysLog": {"sendInfoNotifications": True}})
        assert settings.send_info_notifications is True

    def test_legacy_disable_console_key(self):
        settings = LoggerSettings.from_options({"appName": "a", "disableConsoleLog": True})
        assert settings.disable_console is True

    def test_settings_instance_passthrough(self):
        settings = LoggerSettings.from_options({"appName": "a"})
        assert LoggerSettings.from_options(settings) is settings

    def test_missing_options(self):
        with pytest.raises(InvalidConfiguration, match="Options not set"):
            LoggerSettings.from_options(None)

    @pytest.mark.parametrize(
        "options, field",
        [
            ({}, "app_name"),
            ({"appName": "   "}, "app_name"),
            ({"appName": "a", "fileLog": {"daysToKeep": 40}}, "file_log.days_to_keep"),
            ({"appName": "a", "fileLog": {"daysToKeep": -1}}, "file_log.days_to_keep"),
            ({"appName": "a", "sysLog": {"port": 0}}, "sys_log.port"),
            ({"appName": "a", "sysLog": {"transport": "sctp"}}, "sys_log.transport"),
            ({"appName": "a", "sysLog": {"protocol": "1234"}}, "sys_log.protocol"),
            ({"appName": "a", "debugLevel": -2}, "debug_level"),
            ({"appName": "a", "cluster": {"role": "leader"}}, "cluster.role"),
        ],
    )
    def test_invalid_options(self, options, field):
        with pytest.raises(InvalidConfiguration) as exc_info:
            LoggerSettings.from_options(options)
        err = exc_info.value
        assert err.code == "INVALID_CONFIGURATION"
        assert any(e["loc"] == field for e in err.details["errors"])


class TestEnvironment:
    """CLOG_ environment variables."""

    def test_app_name_from_env(self, monkeypatch):
        monkeypatch.setenv("CLOG_APP_NAME", "from-env")
        assert LoggerSettings.from_options({}).app_name == "from-env"

    def test_explicit_options_win_over_env(self, monkeypatch):
        monkeypatch.setenv("CLOG_APP_NAME", "from-env")
        assert LoggerSettings.from_options({"appName": "explicit"}).app_name == "explicit"

    def test_nested_env(self, monkeypatch):
        monkeypatch.setenv("CLOG_FILE_LOG__DAYS_TO_KEEP", "3")
        monkeypatch.setenv("CLOG_DEBUG_LEVEL", "2")
        settings = LoggerSettings.from_options({"appName": "a"})
        assert settings.file_log.days_to_keep == 3
        assert settings.debug_level == 2

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("CLOG_APP_NAME=dotenv\n", encoding="utf-8")
        assert LoggerSettings.from_options({}).app_name == "dotenv"


def test_watchdog_base_url():
    settings = LoggerSettings.from_options(
        {"appName": "a", "serverWatchdog": {"host": "wd", "port": 8080, "apiKey": "k", "useTls": True}}
    )
    assert settings.server_watchdog.base_url == "https://wd:8080"
    assert settings.server_watchdog.api_key.get_secret_value() == "k"
    assert settings.server_watchdog.interval == 30.0
