import pytest
from aiohttp import web

from api_server import build_api_app, save_public_url
from license_core import KeyRecord, KeyStore, Lifetime, Timestamp


@pytest.fixture
def store(tmp_path):
    s = KeyStore(str(tmp_path / "keys.json"))
    s.set("Firebase-lifetime-AAAAAAAA", KeyRecord(expiry=Lifetime()))
    s.set("Firebase-day-BBBBBBBB", KeyRecord(expiry=Timestamp(1000), hwid=None))
    s.set("Firebase-week-CCCCCCCC", KeyRecord(expiry=Lifetime(), hwid="hw-owner"))
    s.save()
    return s


@pytest.fixture
async def client(aiohttp_client, store):
    return await aiohttp_client(build_api_app(store))


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status == 200
    assert await resp.json() == {"ok": True}


async def test_bind_then_valid(client, store, tmp_path):
    resp = await client.post("/validate", json={"key": "Firebase-lifetime-AAAAAAAA", "hwid": "hw1"})
    assert resp.status == 200
    assert await resp.json() == {"success": True, "message": "HWID bound."}

    resp = await client.post("/validate", json={"key": "Firebase-lifetime-AAAAAAAA", "hwid": "hw1"})
    assert resp.status == 200
    assert await resp.json() == {"success": True, "message": "Key valid."}

    reloaded = KeyStore(store.path)
    reloaded.load()
    assert reloaded.get("Firebase-lifetime-AAAAAAAA").hwid == "hw1"


@pytest.mark.parametrize("body", [
    {"key": "Firebase-lifetime-AAAAAAAA"},
    {"hwid": "hw1"},
    {"key": "", "hwid": "hw1"},
    {"key": 123, "hwid": "hw1"},
    ["not", "an", "object"],
])
async def test_missing_fields(client, body):
    resp = await client.post("/validate", json=body)
    assert resp.status == 400
    assert (await resp.json())["success"] is False


async def test_unparseable_body(client):
    resp = await client.post("/validate", data="{oops", headers={"Content-Type": "application/json"})
    assert resp.status == 400


async def test_unknown_key(client):
    resp = await client.post("/validate", json={"key": "nope", "hwid": "hw1"})
    assert resp.status == 404
    assert await resp.json() == {"success": False, "message": "Invalid key."}


async def test_expired(client):
    resp = await client.post("/validate", json={"key": "Firebase-day-BBBBBBBB", "hwid": "hw1"})
    assert resp.status == 403
    assert await resp.json() == {"success": False, "message": "Key expired."}


async def test_hwid_mismatch(client):
    resp = await client.post("/validate", json={"key": "Firebase-week-CCCCCCCC", "hwid": "intruder"})
    assert resp.status == 403
    assert await resp.json() == {"success": False, "message": "HWID mismatch."}


async def test_save_public_url(aiohttp_server, tmp_path):
    async def ipify(_):
        return web.json_response({"ip": "203.0.113.7"})

    app = web.Application()
    app.router.add_get("/", ipify)
    server = await aiohttp_server(app)

    out = tmp_path / "server_info.txt"
    assert await save_public_url(str(out), 3000, url=str(server.make_url("/")))
    assert out.read_text() == "http://203.0.113.7:3000"


async def test_save_public_url_failure_is_swallowed(aiohttp_server, tmp_path):
    async def broken(_):
        return web.Response(status=500)

    app = web.Application()
    app.router.add_get("/", broken)
    server = await aiohttp_server(app)

    out = tmp_path / "server_info.txt"
    assert not await save_public_url(str(out), 3000, url=str(server.make_url("/")))
    assert not out.exists()
