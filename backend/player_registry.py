import re
import random
import string
import uuid
import logging
from typing import Dict, List

import config
from errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class Player:
    def __init__(self, player_id: str, session_id: str, name: str):
        self.player_id = player_id
        self.session_id = session_id
        self.name = name
        self.score = 0  # filled in when the session reaches FINAL_RESULTS


def sanitize_name(name: str) -> str:
    """Strip HTML tags and control characters."""
    name = re.sub(r'<[^>]+>', '', name)
    name = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', name)
    return name.strip()


def generate_player_name() -> str:
    """Five distinct letters followed by three distinct digits, e.g. 'qwert123'."""
    letters = random.sample(string.ascii_lowercase, config.GENERATED_NAME_LETTERS)
    digits = random.sample(string.digits, config.GENERATED_NAME_DIGITS)
    return ''.join(letters + digits)


class PlayerRegistry:
    def __init__(self):
        self.players: Dict[str, Player] = {}
        self._by_session: Dict[str, List[str]] = {}

    def get(self, player_id: str) -> Player:
        player = self.players.get(player_id)
        if player is None:
            raise NotFoundError(f"Player {player_id} does not exist")
        return player

    def in_session(self, session_id: str) -> List[Player]:
        """Players of a session in join order."""
        return [self.players[pid] for pid in self._by_session.get(session_id, [])]

    def count(self, session_id: str) -> int:
        return len(self._by_session.get(session_id, []))

    def check_name(self, session_id: str, name: str) -> str:
        name = sanitize_name(name)
        if len(name) > config.MAX_PLAYER_NAME_LENGTH:
            raise ValidationError(f"Name must be at most {config.MAX_PLAYER_NAME_LENGTH} characters")
        if name and name in self._names(session_id):
            raise ValidationError(f"Name '{name}' is already used in this session")
        return name

    def add(self, session_id: str, name: str) -> Player:
        name = self.check_name(session_id, name)
        if not name:
            name = self._unique_generated_name(session_id)
        player = Player(str(uuid.uuid4()), session_id, name)
        self.players[player.player_id] = player
        self._by_session.setdefault(session_id, []).append(player.player_id)
        logger.info("Player '%s' joined session %s", name, session_id)
        return player

    def clear(self):
        self.players.clear()
        self._by_session.clear()

    def _names(self, session_id: str) -> set:
        return {p.name for p in self.in_session(session_id)}

    def _unique_generated_name(self, session_id: str) -> str:
        taken = self._names(session_id)
        for _ in range(config.MAX_NAME_ATTEMPTS):
            name = generate_player_name()
            if name not in taken:
                return name
        raise RuntimeError("Failed to generate unique player name")
