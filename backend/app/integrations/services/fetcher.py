from __future__ import annotations

import logging
import posixpath
from typing import Callable, Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from ..domain.models import Platform
from ..errors import AuthorizationRequiredError, RemoteFetchFailedError

logger = logging.getLogger("integrations.services.fetcher")

DEFAULT_USER_AGENT = "pkg/v0.0.1"

# Decorates an outgoing request, typically with an Authorization header.
RequestAuthorizer = Callable[[requests.Request], None]


def with_bearer(token_fn: Callable[[], Optional[str]]) -> RequestAuthorizer:
    """
    Build a RequestAuthorizer adding "Authorization: Bearer <token>".

    If token_fn yields an empty token, no header is added.
    """

    def authorize(req: requests.Request) -> None:
        token = token_fn()
        if token:
            req.headers["Authorization"] = "Bearer " + token

    return authorize


def join_url(base: str, endpoint: str) -> str:
    parts = urlsplit(base)
    path = posixpath.join(parts.path or "/", endpoint)
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


class Fetcher:
    """
    Single-shot GETs against the package repository and catalog API.

    No retries: a failure is handed straight back to the caller.
    """

    def __init__(
        self,
        *,
        platform: Platform,
        user_agent: str = "",
        authorizer: Optional[RequestAuthorizer] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.user_agent = f"{user_agent or DEFAULT_USER_AGENT} ({platform.os}/{platform.arch})"
        self.authorizer = authorizer
        self.session = session or requests.Session()
        self.timeout = timeout

    def get(self, base: str, endpoint: str, *, auth: bool = False, stream: bool = False) -> requests.Response:
        """
        GET base/endpoint. The caller owns (and must close) the response.

        With auth=True the authorizer must have set an Authorization header,
        otherwise nothing is sent.
        """
        url = join_url(base, endpoint)
        req = requests.Request("GET", url, headers={"User-Agent": self.user_agent})

        if auth and self.authorizer is not None:
            self.authorizer(req)

        if auth and not req.headers.get("Authorization"):
            raise AuthorizationRequiredError(url)

        logger.debug("GET %s (auth=%s)", url, auth)
        resp = self.session.send(self.session.prepare_request(req), stream=stream, timeout=self.timeout)

        if resp.status_code != 200:
            resp.close()
            logger.warning("GET %s failed: %s %s", url, resp.status_code, resp.reason)
            raise RemoteFetchFailedError(url, resp.status_code, resp.reason or "")
        return resp
