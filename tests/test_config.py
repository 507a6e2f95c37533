import pytest

from streamrelay.app_config import RelayClientSettings
from streamrelay.shared.config import config


@pytest.fixture
def env(monkeypatch):
    """Set environment variables and reload the shared config around a test."""

    def _set(**values: str):
        for key, value in values.items():
            monkeypatch.setenv(key, value)
        config.reload()

    yield _set
    monkeypatch.undo()
    config.reload()


def test_get_bool_reads_common_spellings(env):
    env(FLAG_A="true", FLAG_B="Yes", FLAG_C="0", FLAG_D="")
    assert config.get_bool("FLAG_A") is True
    assert config.get_bool("FLAG_B") is True
    assert config.get_bool("FLAG_C") is False
    assert config.get_bool("FLAG_D", True) is True


def test_get_int_and_float_fall_back_on_bad_values(env):
    env(PORT_OK="8080", PORT_BAD="eighty", PORT_LOW="-1", RATIO="0.5")
    assert config.get_int("PORT_OK", 3000) == 8080
    assert config.get_int("PORT_BAD", 3000) == 3000
    assert config.get_int("PORT_LOW", 3000, minimum=1) == 3000
    assert config.get_float("RATIO", 1.0) == 0.5


def test_get_list_splits_and_strips(env):
    env(RELAY_CLIENT_ENDPOINTS=" https://a.example.com , ,https://b.example.com ")
    assert config.get_list("RELAY_CLIENT_ENDPOINTS") == ["https://a.example.com", "https://b.example.com"]
    assert config.get_list("MISSING_LIST", ["x"]) == ["x"]


def test_relay_client_settings_from_environ(env):
    env(
        RELAY_CLIENT_ENDPOINTS="https://a.example.com,https://b.example.com",
        RELAY_CLIENT_USER_ENDPOINT="https://mine.example.com",
        RELAY_CLIENT_MAX_RECONNECT_ATTEMPTS="2",
        RELAY_CLIENT_AUTO_RECONNECT="false",
    )

    settings = RelayClientSettings.from_environ()

    assert settings.endpoints == ["https://a.example.com", "https://b.example.com"]
    assert settings.user_endpoint == "https://mine.example.com"
    assert settings.ws_endpoint is None
    assert settings.max_reconnect_attempts == 2
    assert settings.auto_reconnect is False
    assert settings.connect_timeout == 8.0
