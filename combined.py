import asyncio
import logging

from dotenv import load_dotenv

from api_server import start_api
from bot_config import ConfigStore
from bot_worker import Bot, start_bot
from license_core import KeyStore
from settings import load_settings

logger = logging.getLogger(__name__)

async def main():
    load_dotenv()
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    key_store = KeyStore(settings.keys_file)
    key_store.load()
    config_store = ConfigStore(settings.config_file)
    config_store.load()

    bot = Bot(settings, key_store, config_store)
    await asyncio.gather(
        start_api(key_store, settings.api_port, settings.server_info_file),
        start_bot(bot, settings.discord_token),
    )

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
