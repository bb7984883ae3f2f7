import json

from bot_config import BotConfig, ConfigStore


def test_defaults_when_absent(tmp_path):
    store = ConfigStore(str(tmp_path / "config.json"))
    store.load()
    assert store.config == BotConfig(welcome_channel_id=None, ticket_counter=1)


def test_ticket_counter_is_monotonic_and_persisted(tmp_path):
    path = tmp_path / "config.json"
    store = ConfigStore(str(path))
    store.load()
    assert [store.take_ticket_number() for _ in range(3)] == [1, 2, 3]
    assert json.loads(path.read_text())["ticketCounter"] == 4

    reloaded = ConfigStore(str(path))
    reloaded.load()
    assert reloaded.take_ticket_number() == 4


def test_welcome_channel_roundtrip(tmp_path):
    path = tmp_path / "config.json"
    store = ConfigStore(str(path))
    store.set_welcome_channel(123456789)
    assert json.loads(path.read_text()) == {"welcomeChannelId": "123456789", "ticketCounter": 1}

    reloaded = ConfigStore(str(path))
    reloaded.load()
    assert reloaded.welcome_channel_id == "123456789"

    reloaded.clear_welcome_channel()
    assert json.loads(path.read_text())["welcomeChannelId"] is None
