from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from pathlib import Path
from urllib.parse import unquote, unquote_to_bytes, urlparse

import httpx

from .errors import SourceError

_LOGGER = logging.getLogger("improvmix.sources")

AudioSource = str | bytes | Path

_DATA_PREFIX = "data:"
_HTTP_SCHEMES = frozenset({"http", "https"})


def is_data_url(source: object) -> bool:
    return isinstance(source, str) and source[: len(_DATA_PREFIX)].lower() == _DATA_PREFIX


def decode_data_url(source: str) -> bytes:
    """Return the raw bytes embedded in a ``data:`` URL.

    ``data:audio/mpeg;base64,SUQz...`` is base64-decoded; a payload without the
    ``;base64`` marker is percent-decoded.
    """

    if not is_data_url(source):
        raise SourceError("Not a data URL")
    header, sep, payload = source.partition(",")
    if not sep:
        raise SourceError("Data URL has no payload separator")
    params = header[len(_DATA_PREFIX) :].split(";")
    if any(param.strip().lower() == "base64" for param in params[1:]):
        compact = "".join(unquote(payload).split())
        try:
            return base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SourceError(f"Malformed base64 payload: {exc}") from exc
    return unquote_to_bytes(payload)


async def fetch_url(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = 30.0,
) -> bytes:
    try:
        if client is not None:
            response = await client.get(url, timeout=timeout, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
                response = await owned.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise SourceError(
            f"Fetching {url} failed with HTTP {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise SourceError(f"Fetching {url} failed: {exc}") from exc
    _LOGGER.debug("Fetched %d bytes from %s", len(response.content), url)
    return response.content


async def read_file(path: Path) -> bytes:
    try:
        return await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        raise SourceError(f"Unable to read {path}: {exc}") from exc


async def read_source(
    source: AudioSource,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = 30.0,
) -> bytes:
    """Acquire the encoded bytes behind an audio source.

    Accepts raw bytes, ``data:`` URLs, ``http(s)://`` URLs, ``file://`` URLs
    and local paths.
    """

    match source:
        case bytes():
            return source
        case Path():
            return await read_file(source)
        case str() if is_data_url(source):
            return decode_data_url(source)
        case str():
            parsed = urlparse(source)
            scheme = parsed.scheme.lower()
            if scheme in _HTTP_SCHEMES:
                return await fetch_url(source, client=client, timeout=timeout)
            if scheme == "file":
                return await read_file(Path(unquote(parsed.path)))
            if scheme and len(scheme) > 1:
                raise SourceError(f"Unsupported audio source scheme: {scheme}")
            return await read_file(Path(source).expanduser())
        case _:
            raise SourceError(f"Unsupported audio source type: {type(source).__name__}")
