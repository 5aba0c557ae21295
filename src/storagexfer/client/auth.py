"""Request authorization for the object store.

Token minting is not this package's concern: callers hand in an
AuthorizedRequestFactory that attaches credentials to every outgoing
request. BearerTokenFactory covers the common static/refreshing token case.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

import httpx

from storagexfer.client.api import AuthenticationError

logger = logging.getLogger(__name__)


class AuthorizedRequestFactory(Protocol):
    """Attaches valid credentials to an outgoing request."""

    def authorize(self, request: httpx.Request) -> httpx.Request:
        """Return the request with credentials attached.

        Raises:
            AuthenticationError: If credentials cannot be produced.
        """
        ...


class BearerTokenFactory:
    """Authorizes requests with an OAuth2 bearer token.

    Args:
        token: A static token, or a zero-argument callable returning the
            current token (called once per request, so it may refresh).
    """

    def __init__(self, token: str | Callable[[], str]) -> None:
        self._token = token

    def authorize(self, request: httpx.Request) -> httpx.Request:
        """Set the Authorization header on the request."""
        try:
            token = self._token() if callable(self._token) else self._token
        except AuthenticationError:
            raise
        except Exception as e:
            raise AuthenticationError(f"Could not obtain access token: {e}") from e

        if not token:
            raise AuthenticationError("No access token available")

        request.headers["Authorization"] = f"Bearer {token}"
        return request


class AnonymousFactory:
    """Sends requests without credentials (public buckets, local emulators)."""

    def authorize(self, request: httpx.Request) -> httpx.Request:
        return request
