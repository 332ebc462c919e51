"""
Timer Board Service

HTTP API for boards of countdown/stopwatch timers.
Boards are stored as JSON in a key-value store; timer progress is computed from
timestamps whenever a command arrives.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response

from .config import Settings, get_settings
from .engine import Board, apply_command
from .storage import FileStore, KeyValueStore, MemoryStore, load_board, save_board

logger = logging.getLogger(__name__)

# ============================================================
# CONSTANTS
# ============================================================

BOARD_TIMERS_PATH = "/api/boards/{board_id}/timers"

CORS_HEADERS = {
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Max-Age": "86400",
}


# ============================================================
# DEPENDENCIES
# ============================================================


def get_store(request: Request) -> KeyValueStore:
    """The board store attached to the running app."""
    return request.app.state.store


def build_store(settings: Settings) -> KeyValueStore:
    if settings.store_dir:
        return FileStore(settings.store_dir)
    return MemoryStore()


# ============================================================
# CORS
# ============================================================


async def add_cors_headers(request: Request, call_next):
    """Attach CORS headers to every response, echoing the caller's origin."""
    response = await call_next(request)
    response.headers["Access-Control-Allow-Origin"] = request.headers.get("origin") or "*"
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


# ============================================================
# REST ENDPOINTS
# ============================================================

router = APIRouter(redirect_slashes=False)


@router.options(BOARD_TIMERS_PATH, status_code=204)
async def preflight(board_id: str):
    """CORS preflight."""
    return Response(status_code=204)


@router.get(BOARD_TIMERS_PATH, response_model=Board)
async def get_board(board_id: str, store: KeyValueStore = Depends(get_store)):
    """Get a board and its timers. Unknown boards are empty."""
    return await load_board(store, board_id)


@router.post(BOARD_TIMERS_PATH, response_model=Board)
async def post_command(
    board_id: str,
    request: Request,
    store: KeyValueStore = Depends(get_store),
):
    """Apply a command (create, command, delete) to a board and persist it."""
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from None

    board = await load_board(store, board_id)
    updated = apply_command(board, body)
    await save_board(store, board_id, updated)

    action = body.get("action") if isinstance(body, dict) else None
    logger.info("Board %s: %r applied, %d timers", board_id, action, len(updated.timers))
    return updated


# ============================================================
# FASTAPI APP
# ============================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Timer Board Service started (store: %s)", type(app.state.store).__name__)
    yield
    logger.info("Timer Board Service stopped")


def create_app(store: KeyValueStore | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Timer Board Service",
        description="Named countdown and stopwatch timers grouped into boards",
        version="0.1.0",
        lifespan=lifespan,
        redirect_slashes=False,
    )
    app.state.store = store if store is not None else build_store(settings)
    app.middleware("http")(add_cors_headers)
    app.include_router(router)
    return app


app = create_app()


# ============================================================
# MAIN
# ============================================================


def main():
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
