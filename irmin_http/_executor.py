"""Single request/response command execution.

``run_command`` issues one GET (no body) or POST (JSON body), reads the
whole reply and decodes it into a :class:`~irmin_http.envelope.Reply`.
It does not interpret the envelope's ``error`` field; that is the job of
:class:`~irmin_http.connection.Connection`.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from irmin_http._debug import fmt_body, fmt_json, wire_request_logger
from irmin_http.envelope import PostRequest, Reply, ResultDecoder
from irmin_http.errors import ResponseDecodeError

_JSON_CONTENT_TYPE = "application/json"


def encode_post(post: PostRequest) -> bytes:
    """Serialize a POST body."""
    return json.dumps(post.to_json(), separators=(",", ":")).encode("utf-8")


def request_args(post: PostRequest | None) -> dict[str, Any]:
    """Return the ``method``/``content``/``headers`` kwargs for *post*."""
    if post is None:
        return {"method": "GET", "headers": {"Accept": _JSON_CONTENT_TYPE}}
    return {
        "method": "POST",
        "content": encode_post(post),
        "headers": {"Accept": _JSON_CONTENT_TYPE, "Content-Type": _JSON_CONTENT_TYPE},
    }


def run_command[T](
    client: httpx.Client,
    url: str,
    decode_result: ResultDecoder[T],
    post: PostRequest | None = None,
) -> Reply[T]:
    """Execute one command and decode its reply envelope.

    Args:
        client: HTTP client used for the request.
        url: Fully built request URL.
        decode_result: Decoder for the envelope's ``result`` field.
        post: Request body; ``None`` issues a GET.

    Returns:
        The decoded envelope, which may carry a server ``error``.

    Raises:
        httpx.TransportError: On connection, timeout or protocol failure
            (propagated unchanged).
        ResponseDecodeError: If the body is not a valid JSON envelope.

    """
    args = request_args(post)
    if wire_request_logger.isEnabledFor(logging.DEBUG):
        wire_request_logger.debug(
            "%s %s body=%s",
            args["method"],
            url,
            fmt_json(post.to_json()) if post is not None else "-",
        )

    with client.stream(args["method"], url, content=args.get("content"), headers=args["headers"]) as resp:
        content = resp.read()

    if wire_request_logger.isEnabledFor(logging.DEBUG):
        wire_request_logger.debug(
            "Reply %s %s: status=%d, size=%d, body=%s",
            args["method"],
            url,
            resp.status_code,
            len(content),
            fmt_body(content),
        )

    try:
        obj = json.loads(content)
    except ValueError as exc:
        raise ResponseDecodeError(
            f"HTTP {resp.status_code}: reply is not valid JSON ({exc}; body: {fmt_body(content)!r})",
            url=url,
            status_code=resp.status_code,
        ) from exc

    try:
        return Reply.from_json(obj, decode_result)
    except (ValueError, TypeError) as exc:
        raise ResponseDecodeError(
            f"HTTP {resp.status_code}: malformed reply envelope: {exc}",
            url=url,
            status_code=resp.status_code,
        ) from exc
