"""
Health endpoint for the match engine.
"""
from datetime import datetime

from aiohttp import web
from loguru import logger
from sqlalchemy import text

from src.core.diagnostics import snapshot_metrics
from src.matchmaking.dispatch import MATCHES_TOPIC, MESSAGES_TOPIC, PROPOSALS_TOPIC
from src.matchmaking.engine import MatchEngine

ENGINE_KEY = web.AppKey("engine", MatchEngine)


async def check_database(engine: MatchEngine) -> dict:
    """Run a trivial query to see whether storage answers."""
    try:
        async with engine.session_factory() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as e:
        logger.error(f"Health check database query failed: {e}")
        return {"status": "error", "message": str(e)[:200]}


async def health_handler(request: web.Request) -> web.Response:
    """Aggregate health check endpoint"""
    engine = request.app[ENGINE_KEY]
    database = await check_database(engine)
    healthy = database["status"] == "ok"

    return web.json_response(
        {
            "status": "ok" if healthy else "degraded",
            "database": database,
            "subscriptions": {
                topic: engine.hub.subscriber_count(topic)
                for topic in (MATCHES_TOPIC, MESSAGES_TOPIC, PROPOSALS_TOPIC)
            },
            "metrics": snapshot_metrics(),
            "timestamp": datetime.now().isoformat(),
        },
        status=200 if healthy else 503,
    )


def create_health_app(engine: MatchEngine) -> web.Application:
    app = web.Application()
    app[ENGINE_KEY] = engine
    app.router.add_get("/health", health_handler)
    app.router.add_get("/", health_handler)
    return app


async def start_health_server(engine: MatchEngine, host: str, port: int) -> web.AppRunner:
    """Start serving /health. The caller must call runner.cleanup() on shutdown."""
    runner = web.AppRunner(create_health_app(engine))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Health check server running on {host}:{port}")
    return runner
