# error taxonomy shared by db, api and repository

from typing import Optional


class LevelUpError(Exception):
    """Base class for every error raised by the store's own layers."""

    default_message = "Something went wrong."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


# ---------------------------
# Local cache
# ---------------------------


class StorageUnavailable(LevelUpError):
    default_message = "Local storage is unavailable."


class ConstraintViolation(LevelUpError):
    default_message = "A record with the same key already exists."


class EmailAlreadyRegistered(ConstraintViolation):
    default_message = "Email already registered."


class NotFound(LevelUpError):
    default_message = "Not found."


# ---------------------------
# Authentication
# ---------------------------


class InvalidCredentials(LevelUpError):
    default_message = "Invalid email or password."


class AuthenticationFailed(LevelUpError):
    default_message = "Invalid username or password."


class NotAuthenticated(LevelUpError):
    default_message = "You must log in first."


# ---------------------------
# Remote API
# ---------------------------


class NetworkError(LevelUpError):
    default_message = "Could not reach the server."


class HttpError(LevelUpError):
    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(body.strip() or f"Server error: {status}")


class DecodeError(LevelUpError):
    default_message = "Malformed response from server."
