"""
Session and authentication helpers.

The Session is the one place that reads or writes credentials. Being
"authenticated" means nothing more than having a non-empty token stored:
there is no signature check and no expiry.
"""

import json
import logging
from typing import Optional

from pydantic import ValidationError

from api_client import ApiClient, ApiError
from schemas import AuthResponse, User
from storage import Storage

logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"
USER_KEY = "user_data"


class Session:
    def __init__(self, storage: Storage):
        self.storage = storage

    @property
    def token(self) -> Optional[str]:
        token = self.storage.get_item(TOKEN_KEY)
        if token is None:
            return None
        return token.strip() or None

    def set_auth(self, token: str, user: User) -> None:
        self.storage.set_item(TOKEN_KEY, token.strip())
        self.storage.set_item(USER_KEY, user.model_dump_json())

    def get_auth_user(self) -> Optional[User]:
        raw = self.storage.get_item(USER_KEY)
        if not raw:
            return None
        try:
            return User.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            # unparsable user data reads as "no user"
            return None

    def is_authenticated(self) -> bool:
        # any non-empty stored string counts, whitespace included
        return bool(self.storage.get_item(TOKEN_KEY))

    def clear(self) -> None:
        self.storage.remove_item(TOKEN_KEY)
        self.storage.remove_item(USER_KEY)


async def login(api: ApiClient, email: str, password: str) -> AuthResponse:
    email = email.strip()
    logger.info("Login attempt: email=%s password_length=%d", email, len(password))
    response = await api.login(email, password)
    api.session.set_auth(response.token, response.user)
    logger.info("Login successful, token stored: %s...", response.token[:20])
    return response


async def register(api: ApiClient, email: str, password: str, name: str) -> AuthResponse:
    logger.info("Registration attempt: email=%s password_length=%d name=%s", email, len(password), name)
    response = await api.register(email, password, name)
    api.session.set_auth(response.token, response.user)
    return response


def logout(session: Session) -> None:
    session.clear()


async def verify_token(api: ApiClient) -> Optional[User]:
    """Ask the server whether the stored token is still good"""
    if not api.session.is_authenticated():
        return None
    try:
        response = await api.verify()
    except ApiError as e:
        logger.warning("Token verification failed: %s", e.message)
        return None
    return response.user if response.valid else None
