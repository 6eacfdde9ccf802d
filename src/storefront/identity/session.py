"""Session provider port and adapters.

The core only cares whether an identity is present. The credential behind it
is opaque: the file adapter reads the id/email/role fields it was persisted
with and nothing else.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

logger = structlog.get_logger(__name__)


class Identity(BaseModel):
    """The signed-in customer. Immutable for the lifetime of a session."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: str = "user"


class SessionProvider(ABC):
    """Abstract source of the current identity."""

    @abstractmethod
    def current_identity(self) -> Identity | None:
        """Return the signed-in identity, or ``None`` for anonymous sessions."""
        ...


class MemorySessionProvider(SessionProvider):
    """Holds the identity in memory. Used by tests and the demo."""

    def __init__(self, identity: Identity | None = None) -> None:
        self._identity = identity

    def sign_in(self, identity: Identity) -> None:
        self._identity = identity

    def sign_out(self) -> None:
        self._identity = None

    def current_identity(self) -> Identity | None:
        return self._identity


class FileSessionProvider(SessionProvider):
    """Reads a persisted JSON credential from disk on every call.

    A missing, unreadable or malformed file means "anonymous".
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def sign_in(self, identity: Identity) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(identity.model_dump_json(), encoding="utf-8")

    def sign_out(self) -> None:
        self.path.unlink(missing_ok=True)

    def current_identity(self) -> Identity | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Session credential unreadable", path=str(self.path), error=str(exc))
            return None

        try:
            return Identity.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Session credential malformed", path=str(self.path), error=str(exc))
            return None


def session_provider(session_file: Path | None = None) -> MemorySessionProvider | FileSessionProvider:
    """File-backed provider when a credential path is configured, in-memory otherwise."""
    if session_file is not None:
        return FileSessionProvider(session_file)
    return MemorySessionProvider()
