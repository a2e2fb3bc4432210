"""
Game Server - newline-delimited JSON over TCP.

Each request is one JSON object per line:
    {"action": "join", "player_code": "...", "name": "Ada"}

Each response is one JSON object per line:
    {"success": true, "message": "Player joined", ...payload}

Actions:
1. create_game      allowed_values?, joker_count?, catalog?
2. get_admin_view   admin_code
3. get_player_view  player_code, player_id?
4. join             player_code, name
5. vote             player_code, player_id, cards
6. update_settings  admin_code, allowed_values?, joker_count?
7. start_voting     admin_code
8. reveal           admin_code
9. new_round        admin_code
"""

import json
import socket
import threading
import logging
from typing import Any, Callable, Dict, Optional

from .game import ActionResult, GameService
from .jokers import DEFAULT_CATALOG_NAME
from .models import DEFAULT_JOKER_COUNT
from .serialization import admin_view, card_from_dict, player_view
from .storage import InMemoryGameStore, JsonFileGameStore

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 12345


class GameServer:
    """TCP server exposing a GameService to clients."""

    def __init__(
        self,
        service: Optional[GameService] = None,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
    ):
        self.service = service or GameService()
        self.host = host
        self.port = port
        self.socket: Optional[socket.socket] = None
        self.running = False
        self.handlers: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            "create_game": self._create_game,
            "get_admin_view": self._get_admin_view,
            "get_player_view": self._get_player_view,
            "join": self._join,
            "vote": self._vote,
            "update_settings": self._update_settings,
            "start_voting": self._start_voting,
            "reveal": self._reveal,
            "new_round": self._new_round,
        }

    # =========================================================================
    # Request handling
    # =========================================================================

    def handle_request(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch one decoded request to its action handler."""
        if not isinstance(data, dict):
            return _failure("Request must be a JSON object")

        action = data.get("action")
        handler = self.handlers.get(action)
        if handler is None:
            logger.error(f"Unknown action: {action}")
            return _failure(f"Unknown action: {action}")

        try:
            return handler(data)
        except KeyError as e:
            return _failure(f"Missing field: {e.args[0]}")
        except (TypeError, ValueError) as e:
            return _failure(f"Invalid request: {e}")

    def _admin_response(self, result: ActionResult) -> Dict[str, Any]:
        response = _result(result)
        if result.success and result.game is not None:
            response["game"] = admin_view(result.game)
        return response

    def _create_game(self, data: Dict[str, Any]) -> Dict[str, Any]:
        result = self.service.create_game(
            allowed_values=data.get("allowed_values"),
            joker_count=data.get("joker_count", DEFAULT_JOKER_COUNT),
            catalog_name=data.get("catalog", DEFAULT_CATALOG_NAME),
        )
        return self._admin_response(result)

    def _get_admin_view(self, data: Dict[str, Any]) -> Dict[str, Any]:
        game = self.service.get_game_by_admin_code(data["admin_code"])
        if game is None:
            return _failure("Invalid admin code")
        return {"success": True, "message": "OK", "game": admin_view(game)}

    def _get_player_view(self, data: Dict[str, Any]) -> Dict[str, Any]:
        game = self.service.get_game_by_player_code(data["player_code"])
        if game is None:
            return _failure("Invalid player code")
        return {"success": True, "message": "OK", "game": player_view(game, data.get("player_id"))}

    def _join(self, data: Dict[str, Any]) -> Dict[str, Any]:
        result = self.service.add_player(data["player_code"], data["name"])
        response = _result(result)
        if result.success:
            response["player_id"] = result.player.id
            response["game"] = player_view(result.game, result.player.id)
        return response

    def _vote(self, data: Dict[str, Any]) -> Dict[str, Any]:
        cards = [card_from_dict(c) for c in data["cards"]]
        result = self.service.submit_vote(data["player_code"], data["player_id"], cards)
        response = _result(result)
        if result.success:
            response["game"] = player_view(result.game, result.player.id)
        return response

    def _update_settings(self, data: Dict[str, Any]) -> Dict[str, Any]:
        result = self.service.update_settings(
            data["admin_code"],
            allowed_values=data.get("allowed_values"),
            joker_count=data.get("joker_count"),
        )
        return self._admin_response(result)

    def _start_voting(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._admin_response(self.service.start_voting(data["admin_code"]))

    def _reveal(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._admin_response(self.service.reveal(data["admin_code"]))

    def _new_round(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._admin_response(self.service.start_new_round(data["admin_code"]))

    # =========================================================================
    # Transport
    # =========================================================================

    def start(self):
        """Start the server (blocking). Each client gets its own thread."""
        self.socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.socket.bind((self.host, self.port))
        self.socket.listen()
        self.running = True

        logger.info(f"Game server started on {self.host}:{self.port}")

        while self.running:
            try:
                client, address = self.socket.accept()
                logger.info(f"Connection from {address}")
                threading.Thread(target=self._handle_client, args=(client,), daemon=True).start()
            except OSError:
                break

    def _handle_client(self, client: socket.socket):
        """Read newline-delimited requests until the client disconnects."""
        buffer = ""

        with client:
            while self.running:
                try:
                    data = client.recv(4096).decode("utf-8")
                except (ConnectionResetError, UnicodeDecodeError) as e:
                    logger.info(f"Client disconnected: {e}")
                    break
                if not data:
                    break

                buffer += data
                while "\n" in buffer:
                    line, buffer = buffer.split("\n", 1)
                    if line.strip():
                        response = self.process_message(line.strip())
                        client.sendall((response + "\n").encode("utf-8"))

    def process_message(self, message: str) -> str:
        """Decode one request line and encode its response."""
        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON: {e}")
            return json.dumps(_failure("Invalid JSON"))

        response = self.handle_request(data)
        logger.debug(f"Action {data.get('action') if isinstance(data, dict) else None}: {response['message']}")
        return json.dumps(response)

    def stop(self):
        """Stop the server."""
        self.running = False
        if self.socket:
            self.socket.close()
        logger.info("Server stopped")


def _result(result: ActionResult) -> Dict[str, Any]:
    return {"success": result.success, "message": result.message}


def _failure(message: str) -> Dict[str, Any]:
    return {"success": False, "message": message}


def run_server(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, store_path: Optional[str] = None):
    """Run the game server (blocking)."""
    store = JsonFileGameStore(store_path) if store_path else InMemoryGameStore()
    server = GameServer(GameService(store=store), host, port)
    print(f"Balatro Poker server listening on {host}:{port}")

    try:
        server.start()
    except KeyboardInterrupt:
        print("\nShutting down...")
        server.stop()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_server()
