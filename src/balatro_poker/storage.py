"""Game stores.

InMemoryGameStore keeps live GameState objects. JsonFileGameStore also
writes every game as one JSON snapshot file after each put, and reads it
back on startup (joker effects are re-bound by name on load).
"""

import json
import logging
import threading
from pathlib import Path

from balatro_poker.models import GameState
from balatro_poker.serialization import game_from_dict, game_to_dict

logger = logging.getLogger(__name__)


class InMemoryGameStore:
    """Games keyed by game ID, held in process memory."""

    def __init__(self):
        self._games: dict[str, GameState] = {}

    def get(self, game_id: str) -> GameState | None:
        return self._games.get(game_id)

    def put(self, game: GameState) -> None:
        self._games[game.game_id] = game

    def all(self) -> list[GameState]:
        return list(self._games.values())

    def __len__(self) -> int:
        return len(self._games)


class JsonFileGameStore(InMemoryGameStore):
    """In-memory store mirrored to a single JSON file.

    The whole dictionary is rewritten on every put, through a temporary file
    swapped into place, under one store-wide lock. A missing or unreadable
    file starts an empty store.
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)
        self._lock = threading.RLock()
        self.load()

    def load(self) -> None:
        """Replace the in-memory games with the file's contents."""
        self._games = {}
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read game store {self.path}: {e}")
            return

        for game_id, snapshot in data.items():
            try:
                self._games[game_id] = game_from_dict(snapshot)
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable game {game_id}: {e}")
        logger.info(f"Loaded {len(self._games)} games from {self.path}")

    def save(self) -> None:
        with self._lock:
            data = {game_id: game_to_dict(game) for game_id, game in self._games.items()}
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            tmp_path.write_text(json.dumps(data, indent=2))
            tmp_path.replace(self.path)

    def put(self, game: GameState) -> None:
        with self._lock:
            super().put(game)
            self.save()

    def all(self) -> list[GameState]:
        with self._lock:
            return super().all()
