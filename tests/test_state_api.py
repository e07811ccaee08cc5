import asyncio
import datetime

from aiohttp import test_utils

from app.api import create_app
from app.services.draw_flow import DrawFlow
from app.services.shared_state import format_timestamp
from app.services.state_store import StateStore

from conftest import BrokenSessionFactory


def run_with_client(flow, scenario):
    async def runner():
        async with test_utils.TestClient(test_utils.TestServer(create_app(flow))) as client:
            await scenario(client)

    asyncio.run(runner())


def test_get_state_returns_default_blob_with_cors(flow):
    async def scenario(client):
        resp = await client.get("/api/state")
        assert resp.status == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        body = await resp.json()
        assert body["assignments"] == {}
        assert body["messages"] == []

        resp = await client.options("/api/state")
        assert resp.status == 200
        assert "POST" in resp.headers["Access-Control-Allow-Methods"]

    run_with_client(flow, scenario)


def test_post_state_requires_known_sections(flow):
    async def scenario(client):
        resp = await client.post("/api/state", json={"unknown": 1})
        assert resp.status == 400

        resp = await client.post("/api/state", data="not json")
        assert resp.status == 400

        resp = await client.post("/api/state", json={"wishlists": {"ana": {"ideas": ["Tea"], "links": []}}})
        assert resp.status == 200
        body = await resp.json()
        assert body["wishlists"]["ana"]["ideas"] == ["Tea"]

    run_with_client(flow, scenario)


def test_post_state_rejects_invalid_assignments(flow):
    async def scenario(client):
        resp = await client.post("/api/state", json={"assignments": {"wes": "wes"}})
        assert resp.status == 422
        body = await resp.json()
        assert body["reason"] == "self_draw"
        assert body["message"] == "Wes cannot draw themselves."

    run_with_client(flow, scenario)


def test_manual_entry_and_reveal(flow):
    async def scenario(client):
        resp = await client.post("/api/draw/manual", json={"giver": "erin", "recipient": "thomas"})
        assert resp.status == 422
        assert (await resp.json())["reason"] == "excluded"

        resp = await client.post("/api/draw/manual", json={"giver": "erin", "recipient": "ana"})
        assert resp.status == 200
        body = await resp.json()
        assert body["persisted"]
        assert "assignments" not in body

        resp = await client.get("/api/draw/erin")
        body = await resp.json()
        assert body["recipient"] == "ana"
        assert body["recipientName"] == "Ana"

        resp = await client.get("/api/draw/thomas")
        assert (await resp.json())["recipient"] is None

        resp = await client.get("/api/draw/zed")
        assert resp.status == 404

    run_with_client(flow, scenario)


def test_complete_and_clear_draw(flow):
    async def scenario(client):
        resp = await client.post("/api/draw/complete", json={"seed": 7})
        assert resp.status == 200
        body = await resp.json()
        assert body["status"] == "completed"
        assert body["assigned"] == 11

        resp = await client.post("/api/draw/complete")
        assert (await resp.json())["status"] == "already_complete"

        resp = await client.post("/api/draw/complete", json={"seed": "lucky"})
        assert resp.status == 400

        resp = await client.delete("/api/draw")
        assert resp.status == 200

        resp = await client.get("/api/draw/ana")
        assert (await resp.json())["recipient"] is None

    run_with_client(flow, scenario)


def test_complete_draw_infeasible_is_conflict(store, couple_roster):
    async def scenario(client):
        resp = await client.post("/api/draw/complete", json={"seed": 1})
        assert resp.status == 409
        assert (await resp.json())["status"] == "infeasible"

    run_with_client(DrawFlow(store, couple_roster), scenario)


def test_store_failures_map_to_server_errors(family_roster):
    flow = DrawFlow(StateStore(session_factory=BrokenSessionFactory()), family_roster)

    async def scenario(client):
        resp = await client.get("/api/state")
        assert resp.status == 500
        assert (await resp.json())["message"].startswith("Storage configuration error")

        resp = await client.post("/api/draw/manual", json={"giver": "ana", "recipient": "erin"})
        assert resp.status == 503
        assert (await resp.json())["offline"]

    run_with_client(flow, scenario)


def test_wrongly_typed_ids_are_bad_requests(flow, store):
    async def scenario(client):
        resp = await client.post("/api/state", json={"assignments": {"ana": ["erin"]}})
        assert resp.status == 400
        assert "participant ids" in (await resp.json())["message"]

        resp = await client.post("/api/state", json={"assignments": {"ana": {"id": "erin"}}})
        assert resp.status == 400

        resp = await client.post("/api/draw/manual", json={"giver": "ana", "recipient": ["erin"]})
        assert resp.status == 400

        resp = await client.post("/api/draw/manual", json={"giver": {"id": "ana"}, "recipient": "erin"})
        assert resp.status == 400

    run_with_client(flow, scenario)
    assert store.load()["assignments"] == {}


def test_body_that_is_not_utf8_is_a_bad_request(flow):
    async def scenario(client):
        headers = {"Content-Type": "application/json"}
        resp = await client.post("/api/state", data=b'{"messages": ["\xff\xfe"]}', headers=headers)
        assert resp.status == 400

        resp = await client.post("/api/draw/manual", data=b"\xff\xfe", headers=headers)
        assert resp.status == 400

    run_with_client(flow, scenario)


def test_get_state_hides_expired_messages(flow, store):
    now = datetime.datetime.now(datetime.timezone.utc)
    old = format_timestamp(now - datetime.timedelta(days=45))
    store.save(
        {
            "messages": [
                {"id": "old", "author": "Ana", "text": "Last year", "createdAt": old},
                {"id": "new", "author": "Erin", "text": "See you soon", "createdAt": format_timestamp(now)},
            ]
        }
    )

    async def scenario(client):
        resp = await client.get("/api/state")
        body = await resp.json()
        assert [entry["id"] for entry in body["messages"]] == ["new"]

    run_with_client(flow, scenario)


def test_already_complete_draw_is_not_reported_as_saved(flow):
    async def scenario(client):
        await client.post("/api/draw/complete", json={"seed": 4})
        resp = await client.post("/api/draw/complete")
        body = await resp.json()
        assert body["status"] == "already_complete"
        assert body["persisted"] is False

    run_with_client(flow, scenario)
