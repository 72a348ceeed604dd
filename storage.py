"""
Key/value storage backends for the client-side session.

Values are stored as plain strings with no encryption, scoping or expiry.
"""

import logging
from typing import Dict, Optional

from starlette.responses import Response

logger = logging.getLogger(__name__)


class Storage:
    """Minimal localStorage-style interface"""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(Storage):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._items


class CookieStorage(Storage):
    """
    Browser cookies as the storage backend.

    Reads come from the incoming request's cookies. Writes are visible to
    later reads straight away and are buffered until apply() copies them
    onto the outgoing response. Cookies are readable from page scripts
    (not HttpOnly) and never expire on their own.
    """

    def __init__(self, cookies: Dict[str, str]):
        self._cookies = dict(cookies)
        self._pending: Dict[str, Optional[str]] = {}

    def get_item(self, key: str) -> Optional[str]:
        if key in self._pending:
            return self._pending[key]
        return self._cookies.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._pending[key] = value

    def remove_item(self, key: str) -> None:
        self._pending[key] = None

    def apply(self, response: Response) -> Response:
        for key, value in self._pending.items():
            if value is None:
                response.delete_cookie(key)
            else:
                response.set_cookie(key, value, httponly=False, samesite="lax")
        if self._pending:
            logger.debug("Session cookies written: %s", sorted(self._pending))
        self._pending.clear()
        return response
