"""HTTP reader for build logs stored in an Azure Storage append blob."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx

from ..cancellation import CancellationToken
from ..errors import LogStreamError, OperationCancelled
from .base import AppendLogSource, Completion, LogChunk

logger = logging.getLogger(__name__)

# The registry sets this blob metadata once the build stops appending.
COMPLETE_METADATA_HEADER = "x-ms-meta-complete"
_SUCCESS_VALUES = frozenset({"successful", "succeeded", "success", "true"})

DEFAULT_TIMEOUT = 30.0

_BASE_HEADERS = {"x-ms-version": "2019-12-12"}


def parse_completion(value: Optional[str]) -> Optional[Completion]:
    """Map the blob's completion metadata to a :class:`Completion` flag."""
    if value is None:
        return None
    lowered = value.strip().lower()
    if not lowered:
        return None
    if lowered in _SUCCESS_VALUES:
        return Completion.SUCCEEDED
    return Completion.FAILED


class AppendBlobReader(AppendLogSource):
    """Fetch appended ranges of a blob addressed by a SAS URL.

    Each fetch issues ``GET`` with ``Range: bytes=<offset>-``. A ``416``
    response means nothing was appended since ``offset``; a ``404`` before
    the first byte means the blob has not been created yet.

    The completion flag is blob metadata. It is taken from the ``GET``
    response when present there. When a fetch finds no new bytes and the
    response carries no flag (storage error replies such as ``416`` omit
    metadata), the blob properties are read with ``HEAD``. The flag from
    ``HEAD`` is only reported if the blob has not grown past ``offset``.
    """

    def __init__(
        self,
        url: str,
        *,
        client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    def __enter__(self) -> "AppendBlobReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def fetch(self, offset: int, token: CancellationToken) -> LogChunk:
        token.raise_if_cancelled()

        headers = dict(_BASE_HEADERS)
        if offset > 0:
            headers["Range"] = f"bytes={offset}-"
        response = self._request("GET", headers, token)

        completion = parse_completion(response.headers.get(COMPLETE_METADATA_HEADER))

        if response.status_code == 416:
            if completion is None:
                completion = self._read_completion(offset, token)
            return LogChunk(b"", completion)

        if response.status_code == 404 and offset == 0:
            logger.debug("Build log blob not created yet: %s", _redact(self.url))
            return LogChunk(b"", None)

        if response.status_code not in (200, 206):
            raise LogStreamError(
                f"Unexpected response while reading build log: {response.text[:200]}",
                status_code=response.status_code,
            )

        data = response.content
        if response.status_code == 200 and offset > 0:
            # Server ignored the range header; drop what was already received.
            data = data[offset:]

        if not data and completion is None:
            completion = self._read_completion(offset, token)

        logger.debug("Fetched %d bytes of build log at offset %d", len(data), offset)
        return LogChunk(data, completion)

    def _read_completion(
        self, offset: int, token: CancellationToken
    ) -> Optional[Completion]:
        """Read the completion flag from the blob properties.

        Returns None while the flag is unset, or when the blob already holds
        bytes past ``offset`` (they must be fetched before completion counts).
        """
        token.raise_if_cancelled()
        response = self._request("HEAD", dict(_BASE_HEADERS), token)
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise LogStreamError(
                "Unexpected response while reading build log properties.",
                status_code=response.status_code,
            )

        try:
            length = int(response.headers.get("content-length", "0"))
        except ValueError:
            length = 0
        if length > offset:
            logger.debug("Build log grew to %d bytes past offset %d", length, offset)
            return None
        return parse_completion(response.headers.get(COMPLETE_METADATA_HEADER))

    def _request(
        self, method: str, headers: Dict[str, str], token: CancellationToken
    ) -> httpx.Response:
        try:
            return self._client.request(method, self.url, headers=headers)
        except httpx.HTTPError as exc:
            if token.is_cancelled():
                raise OperationCancelled("log fetch interrupted") from exc
            raise LogStreamError(f"Failed to read build log: {exc}") from exc


def _redact(url: str) -> str:
    """Drop the SAS query string before logging a blob URL."""
    return url.split("?", 1)[0]
