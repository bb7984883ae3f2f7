import pytest

from settings import load_settings

BASE_ENV = {
    "DISCORD_TOKEN": "token",
    "CLIENT_ID": "42",
    "ADMIN_USER_IDS": "111, 222,",
    "API_PORT": "3000",
}


def test_load_minimal():
    s = load_settings(BASE_ENV)
    assert s.client_id == 42
    assert s.admin_user_ids == ("111", "222")
    assert s.guild_id is None
    assert s.api_port == 3000
    assert s.key_prefix == "Firebase"
    assert s.keys_file == "./keys.json"
    assert s.log_level == "INFO"


def test_optional_values():
    s = load_settings({**BASE_ENV, "GUILD_ID": "99", "KEY_PREFIX": "Acme", "LOG_LEVEL": "debug"})
    assert s.guild_id == 99
    assert s.key_prefix == "Acme"
    assert s.log_level == "DEBUG"


@pytest.mark.parametrize("missing", ["DISCORD_TOKEN", "CLIENT_ID", "ADMIN_USER_IDS", "API_PORT"])
def test_missing_required_is_fatal(missing):
    env = {k: v for k, v in BASE_ENV.items() if k != missing}
    with pytest.raises(SystemExit, match=missing):
        load_settings(env)


def test_non_integer_port_is_fatal():
    with pytest.raises(SystemExit, match="API_PORT"):
        load_settings({**BASE_ENV, "API_PORT": "http"})


def test_non_numeric_admin_id_is_fatal():
    with pytest.raises(SystemExit, match="ADMIN_USER_IDS"):
        load_settings({**BASE_ENV, "ADMIN_USER_IDS": "111,alice"})
