from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import FileResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
from pathlib import Path
from routers.rooms import rooms_router
from backend import room_registry
from relay import Coordinator, WebSocketConnection
from constants import LOG_LEVEL, LOG_FILE, ROOM_SWEEP_INTERVAL_SECONDS
import asyncio
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

PUBLIC_DIR = Path(__file__).resolve().parent / "public"


async def sweep_expired_rooms(interval: int):
    """Background task that reclaims memory held by expired rooms."""
    logger.info(f"Starting expired room sweeper, interval={interval}s")
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                app.state.registry.sweep_expired()
                app.state.coordinator.prune_idle_rooms()
            except Exception as e:
                logger.error(f"Error sweeping expired rooms: {e}", exc_info=True)
    except asyncio.CancelledError:
        logger.info("Expired room sweeper cancelled")
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = None
    if ROOM_SWEEP_INTERVAL_SECONDS > 0:
        sweeper = asyncio.create_task(sweep_expired_rooms(ROOM_SWEEP_INTERVAL_SECONDS))
    yield
    if sweeper:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass


app = FastAPI(lifespan=lifespan)

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.include_router(rooms_router)
app.mount("/public", StaticFiles(directory=PUBLIC_DIR), name="public")

# Single-process state: the registry owns rooms, the coordinator owns the
# connections bound to them.
app.state.registry = room_registry
app.state.coordinator = Coordinator(room_registry)

logger.info("FastAPI application initialized")


@app.get("/", response_class=PlainTextResponse)
async def health():
    return "OK"


@app.get("/r/{token}")
async def room_page(token: str):
    # the client reads the token from its own URL
    return FileResponse(PUBLIC_DIR / "index.html")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Location relay socket.

    Frames are JSON ``{"event": ..., "data": ...}``. The first useful frame
    is ``join`` with a room token; ``loc_update`` frames are relayed to the
    other members of the room.
    """
    await websocket.accept()
    coordinator: Coordinator = websocket.app.state.coordinator
    connection = WebSocketConnection(websocket)
    client_host = websocket.client.host if websocket.client else "unknown"
    logger.info(f"WebSocket connection {connection.id} accepted from {client_host}")

    message_count = 0
    try:
        while True:
            data = await websocket.receive_text()
            message_count += 1
            await coordinator.handle_message(connection, data)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {connection.id} after {message_count} messages")
    except Exception as e:
        logger.error(f"Error receiving message from connection {connection.id}: {e}", exc_info=True)
        try:
            await websocket.close(code=1011)
        except Exception as close_error:
            logger.debug(f"Error closing WebSocket {connection.id}: {close_error}")
    finally:
        await coordinator.handle_disconnect(connection)
