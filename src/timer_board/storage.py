"""Key-value persistence for timer boards."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from pydantic import ValidationError

from .engine import Board

logger = logging.getLogger(__name__)

BOARD_KEY_PREFIX = "board:"


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str) -> None: ...


class MemoryStore:
    """Process-local store. Contents are lost on restart."""

    def __init__(self):
        self.data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def put(self, key: str, value: str) -> None:
        self.data[key] = value


class FileStore:
    """One file per key under ``directory``; file names are the percent-encoded keys."""

    def __init__(self, directory: str | os.PathLike[str]):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / quote(key, safe="")

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, key)

    async def put(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)

    def _read(self, key: str) -> str | None:
        try:
            return self.path_for(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _write(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)


def board_key(board_id: str) -> str:
    return f"{BOARD_KEY_PREFIX}{board_id}"


async def load_board(store: KeyValueStore, board_id: str) -> Board:
    """Load a board, falling back to an empty one when nothing usable is stored."""
    raw = await store.get(board_key(board_id))
    if not raw:
        return Board.empty(board_id)

    try:
        return Board.model_validate_json(raw)
    except ValidationError:
        logger.warning("Stored board %s is unreadable, treating it as empty", board_id)
        return Board.empty(board_id)


async def save_board(store: KeyValueStore, board_id: str, board: Board) -> None:
    await store.put(board_key(board_id), board.model_dump_json(by_alias=True))
