import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from dal.message_dal import MessageDAL
from dal.room_dal import RoomDAL
from routes.chat_ws import router as chat_ws_router
from routes.message_route import router as message_router
from routes.room_route import router as room_router
from services.realtime.connection_hub import ConnectionHub
from services.realtime.routing_engine import RoutingEngine
from services.realtime.session_registry import SessionRegistry
from utils.database_init import AsyncDatabaseInitializer

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite database (at DATABASE_DIR/chat.db) and the default room
      - the session registry, connection hub and routing engine
    and attach them to `app.state`.
    """
    db_initializer = AsyncDatabaseInitializer()
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    default_room = await RoomDAL(db_initializer).ensure_default_room()
    LOGGER.info("Default room %r ready", default_room.name)

    registry = SessionRegistry()
    hub = ConnectionHub()
    app.state.session_registry = registry
    app.state.connection_hub = hub
    app.state.routing_engine = RoutingEngine(registry, hub, MessageDAL(db_initializer))

    yield


def _cors_origins() -> list:
    raw = os.getenv("CORS_ORIGIN") or "*"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.get("/", include_in_schema=False, response_class=PlainTextResponse)
    async def index():
        return "Chat server running"

    @app.get("/health")
    async def health(request: Request):
        """
        Report database readiness and the number of live connections and sessions.
        """
        state = request.app.state
        hub = getattr(state, "connection_hub", None)
        registry = getattr(state, "session_registry", None)
        return {
            "ok": True,
            "db_initialized": hasattr(state, "db_initializer"),
            "connections": len(hub) if hub is not None else 0,
            "sessions": len(registry) if registry is not None else 0,
        }

    app.include_router(room_router)
    app.include_router(message_router)
    app.include_router(chat_ws_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "4000")))
