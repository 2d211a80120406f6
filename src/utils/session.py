# bearer token holder shared by the api client and the repository
import os
import threading
from typing import Optional

from utils.logger import get_logger

_logger = get_logger(__name__)

TOKEN_PATH = os.getenv("LEVELUP_TOKEN_PATH", "data/token")


class TokenHolder:
    """
    Single-slot holder for the current bearer token.

    Read by the api client on every request, written on login/logout.
    Safe to use from multiple threads.
    """

    def __init__(self, token: Optional[str] = None):
        self._lock = threading.Lock()
        self._token = token

    def get(self) -> Optional[str]:
        with self._lock:
            return self._token

    def set(self, token: Optional[str]) -> None:
        with self._lock:
            self._token = token

    def clear(self) -> None:
        self.set(None)

    @property
    def is_authenticated(self) -> bool:
        return self.get() is not None


class TokenStore:
    """Persists the token on disk so a restarted app can restore the session."""

    def __init__(self, path: Optional[str] = None):
        self.path = path or TOKEN_PATH

    def save(self, token: str) -> None:
        token_dir = os.path.dirname(self.path)
        if token_dir:
            os.makedirs(token_dir, exist_ok=True)
        with open(self.path, "w") as f:
            f.write(token)

    def load(self) -> Optional[str]:
        if not os.path.exists(self.path):
            return None
        with open(self.path, "r") as f:
            token = f.read().strip()
        return token or None

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
            _logger.debug("Persisted token removed.")
