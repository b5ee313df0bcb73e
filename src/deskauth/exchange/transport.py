"""Shared outbound POST helper for the provider and backend exchanges.

Both exchanges have the same three failure modes, differing only in wording:
the request never completed, the endpoint answered non-2xx, or the 2xx body
was not JSON. :func:`post_for_json` performs the request with :mod:`httpx`
and maps each mode onto the matching
:class:`~deskauth.exceptions.UpstreamError` subclass.
"""

from __future__ import annotations

import logging
from typing import Any, NamedTuple

import httpx

from deskauth.exceptions import (
    UpstreamParseError,
    UpstreamStatusError,
    UpstreamTransportError,
)

logger = logging.getLogger(__name__)


class FailureMessages(NamedTuple):
    """Message prefixes for the three upstream failure modes."""

    transport: str
    status: str
    parse: str


def post_for_json(
    url: str,
    messages: FailureMessages,
    *,
    timeout: float,
    data: dict[str, str] | None = None,
    json: Any = None,
) -> Any:
    """POST to *url* and return the decoded JSON body.

    Exactly one of *data* (form-encoded) or *json* should be given.

    Raises:
        UpstreamTransportError: ``"<transport>: <detail>"`` on network failure.
        UpstreamStatusError: ``"<status>: <body>"`` on a non-2xx response.
        UpstreamParseError: ``"<parse>: <detail>"`` if the body is not JSON.
    """
    logger.debug("POST %s", url)
    try:
        response = httpx.post(
            url,
            data=data,
            json=json,
            headers={"Accept": "application/json"},
            timeout=timeout,
        )
    except httpx.HTTPError as exc:
        raise UpstreamTransportError(f"{messages.transport}: {exc}") from exc

    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        body = exc.response.text
        logger.debug("POST %s returned %s", url, exc.response.status_code)
        raise UpstreamStatusError(
            f"{messages.status}: {body}",
            status_code=exc.response.status_code,
            body=body,
        ) from exc

    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamParseError(f"{messages.parse}: {exc}") from exc
