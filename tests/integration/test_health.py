from aiohttp.test_utils import TestClient, TestServer

from src.health import create_health_app


async def test_health_reports_database_and_subscriptions(match_engine, matched_pair):
    match_engine.matches.subscribe("alice", lambda matches: None)

    client = TestClient(TestServer(create_health_app(match_engine)))
    await client.start_server()
    try:
        response = await client.get("/health")
        assert response.status == 200
        data = await response.json()
    finally:
        await client.close()

    assert data["status"] == "ok"
    assert data["database"] == {"status": "ok"}
    assert data["subscriptions"]["matches"] == 1
    assert data["metrics"]["db_operations"] > 0


async def test_health_is_degraded_without_database(match_engine):
    class BrokenFactory:
        def __call__(self):
            raise ConnectionRefusedError("database down")

    match_engine.session_factory = BrokenFactory()

    client = TestClient(TestServer(create_health_app(match_engine)))
    await client.start_server()
    try:
        response = await client.get("/health")
        assert response.status == 503
        data = await response.json()
    finally:
        await client.close()

    assert data["status"] == "degraded"
    assert data["database"]["status"] == "error"
