import asyncio
import logging

import aiohttp
from aiohttp import web

from license_core import KeyStore, LicenseError, validate

logger = logging.getLogger(__name__)

KEY_STORE = web.AppKey("key_store", KeyStore)

IPIFY_URL = "https://api.ipify.org?format=json"
IP_LOOKUP_TIMEOUT = aiohttp.ClientTimeout(total=10)

async def api_health(_: web.Request):
    return web.json_response({"ok": True})

async def api_validate(request: web.Request):
    try:
        data = await request.json()
    except ValueError:
        return web.json_response({"success": False, "message": "Missing key or HWID."}, status=400)
    if not isinstance(data, dict):
        return web.json_response({"success": False, "message": "Missing key or HWID."}, status=400)

    key = data.get("key")
    hwid = data.get("hwid")
    try:
        outcome = validate(
            request.app[KEY_STORE],
            key if isinstance(key, str) else None,
            hwid if isinstance(hwid, str) else None,
        )
    except LicenseError as e:
        return web.json_response({"success": False, "message": e.message}, status=e.status)

    return web.json_response({"success": True, "message": outcome.message})

def build_api_app(store: KeyStore) -> web.Application:
    app = web.Application()
    app[KEY_STORE] = store
    app.router.add_get("/health", api_health)
    app.router.add_post("/validate", api_validate)
    return app

async def fetch_public_ip(url: str = IPIFY_URL) -> str:
    async with aiohttp.ClientSession(timeout=IP_LOOKUP_TIMEOUT) as session:
        async with session.get(url) as resp:
            resp.raise_for_status()
            data = await resp.json(content_type=None)
    return str(data["ip"])

async def save_public_url(path: str, port: int, url: str = IPIFY_URL) -> bool:
    try:
        ip = await fetch_public_ip(url)
    except (aiohttp.ClientError, asyncio.TimeoutError, KeyError, ValueError) as e:
        logger.error("Failed to fetch public IP: %s", e)
        return False

    base_url = f"http://{ip}:{port}"
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(base_url)
    except OSError as e:
        logger.error("Failed to write %s: %s", path, e)
        return False
    logger.info("Public IP detected and saved: %s", base_url)
    return True

async def start_api(store: KeyStore, port: int, server_info_file: str):
    host = "0.0.0.0"
    app = build_api_app(store)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("API running on %s:%d", host, port)

    await save_public_url(server_info_file, port)

    try:
        # Keep alive forever
        while True:
            await asyncio.sleep(3600)
    finally:
        await runner.cleanup()
