"""Authentication state passed explicitly to everything that talks to the API.

``SessionGate`` owns the lifecycle: ``restore()`` at startup, ``login()`` after
the backend hands out a token, ``logout()`` on teardown. Consumers read the
immutable ``SessionContext`` from ``gate.current``.
"""
import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from database import SessionStore
from errors import AuthenticationError
from models import User

logger = logging.getLogger(__name__)


class SessionContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: Optional[User] = None
    token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and bool(self.token)

    def bearer_token(self) -> str:
        if not self.is_authenticated:
            raise AuthenticationError("You are not signed in. Please log in again.")
        return self.token


class SessionGate:
    def __init__(self, store: SessionStore):
        self.store = store
        self.current = SessionContext()

    def restore(self) -> SessionContext:
        """Load a persisted session, if any"""
        saved = self.store.load_auth()
        if not saved:
            self.current = SessionContext()
            return self.current

        try:
            user = User(**saved["user"])
        except (TypeError, ValidationError):
            logger.warning("Stored user record is invalid, clearing session")
            self.store.clear_auth()
            self.current = SessionContext()
            return self.current

        self.current = SessionContext(user=user, token=saved["token"])
        logger.info(f"Restored session for {user.email}")
        return self.current

    def login(self, email: str, token: str) -> SessionContext:
        if not email or not token:
            raise AuthenticationError("Email and token are required to open a session.")
        user = User(email=email)
        self.store.save_auth(token, user.model_dump())
        self.current = SessionContext(user=user, token=token)
        logger.info(f"Logged in {email}")
        return self.current

    def logout(self) -> SessionContext:
        self.store.clear_auth()
        if self.current.user:
            logger.info(f"Logged out {self.current.user.email}")
        self.current = SessionContext()
        return self.current
