"""
Blob storage collaborator and JSON snapshot helpers.

The service keeps every derived document in a hosted key-blob store that only
offers put / list / fetch / delete. This module defines that contract as a
Protocol with two implementations:

- MemoryBlobStore: dict-backed store used in development and tests.
- HttpBlobStore: httpx client for the hosted blob API.

SnapshotStore layers the read/write conventions used by every pipeline on top:
reads resolve an exact pathname and degrade to None on any failure, writes
replace the existing blob and raise StorageError on failure, and daily
snapshots are written twice (``<prefix>/daily/<date>.json`` and
``<prefix>/latest.json``).

There is no version check on writes: two writers racing on the same pathname
resolve as last-writer-wins.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import httpx


logger = logging.getLogger(__name__)

DATE_IN_PATH_PATTERN = re.compile(r'(\d{4}-\d{2}-\d{2})')


class StorageError(Exception):
    """Raised when the blob store cannot complete a write or delete."""


@dataclass(frozen=True)
class BlobInfo:
    """Listing entry returned by the blob store."""
    pathname: str
    url: str


class BlobStore(Protocol):
    """Minimal key-blob store contract."""

    async def put(
        self,
        pathname: str,
        body: bytes,
        content_type: str = 'application/json',
        allow_overwrite: bool = True,
    ) -> BlobInfo:
        ...

    async def list(self, prefix: str) -> List[BlobInfo]:
        ...

    async def fetch(self, url: str) -> bytes:
        ...

    async def delete(self, url: str) -> None:
        ...


# =============================================================================
# In-memory implementation
# =============================================================================

class MemoryBlobStore:
    """
    Dict-backed blob store.

    URLs take the form ``memory://<pathname>``. The store is process-local and
    loses its contents on restart.
    """

    scheme = 'memory://'

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}

    def _url(self, pathname: str) -> str:
        return f"{self.scheme}{pathname}"

    async def put(
        self,
        pathname: str,
        body: bytes,
        content_type: str = 'application/json',
        allow_overwrite: bool = True,
    ) -> BlobInfo:
        if not allow_overwrite and pathname in self._blobs:
            raise StorageError(f"Blob already exists: {pathname}")
        self._blobs[pathname] = body
        return BlobInfo(pathname=pathname, url=self._url(pathname))

    async def list(self, prefix: str) -> List[BlobInfo]:
        return [
            BlobInfo(pathname=pathname, url=self._url(pathname))
            for pathname in sorted(self._blobs)
            if pathname.startswith(prefix)
        ]

    async def fetch(self, url: str) -> bytes:
        pathname = url[len(self.scheme):]
        try:
            return self._blobs[pathname]
        except KeyError:
            raise StorageError(f"Blob not found: {url}") from None

    async def delete(self, url: str) -> None:
        self._blobs.pop(url[len(self.scheme):], None)


# =============================================================================
# Hosted blob store over HTTP
# =============================================================================

class HttpBlobStore:
    """
    httpx client for the hosted blob API.

    Endpoints:
        PUT  {base}/{pathname}           upload (x-allow-overwrite header)
        GET  {base}?prefix=&cursor=      paginated listing
        POST {base}/delete               {"urls": [...]}
        GET  {blob url}                  download

    Transport or HTTP failures surface as StorageError.
    """

    def __init__(self, base_url: str, token: Optional[str], client: httpx.AsyncClient) -> None:
        self._base_url = base_url.rstrip('/')
        self._token = token
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {'x-api-version': '7'}
        if self._token:
            headers['Authorization'] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _json_object(response: httpx.Response, action: str) -> Dict[str, Any]:
        """Decode a JSON object reply; anything else is a StorageError."""
        try:
            payload = response.json()
        except ValueError as e:
            raise StorageError(f"Failed to {action}: reply is not JSON") from e
        if not isinstance(payload, dict):
            raise StorageError(f"Failed to {action}: expected a JSON object")
        return payload

    async def put(
        self,
        pathname: str,
        body: bytes,
        content_type: str = 'application/json',
        allow_overwrite: bool = True,
    ) -> BlobInfo:
        headers = self._headers()
        headers.update({
            'x-content-type': content_type,
            'x-add-random-suffix': '0',
            'x-allow-overwrite': '1' if allow_overwrite else '0',
        })
        try:
            response = await self._client.put(
                f"{self._base_url}/{pathname}", content=body, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to put {pathname}: {e}") from e
        payload = self._json_object(response, f"put {pathname}")
        try:
            return BlobInfo(pathname=payload.get('pathname', pathname), url=payload['url'])
        except KeyError as e:
            raise StorageError(f"Failed to put {pathname}: reply has no {e}") from e

    async def list(self, prefix: str) -> List[BlobInfo]:
        blobs: List[BlobInfo] = []
        cursor: Optional[str] = None
        while True:
            params = {'prefix': prefix, 'limit': '1000'}
            if cursor:
                params['cursor'] = cursor
            try:
                response = await self._client.get(
                    self._base_url, params=params, headers=self._headers()
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise StorageError(f"Failed to list {prefix}: {e}") from e
            payload = self._json_object(response, f"list {prefix}")
            try:
                blobs.extend(
                    BlobInfo(pathname=item['pathname'], url=item['url'])
                    for item in payload.get('blobs') or []
                )
            except (KeyError, TypeError) as e:
                raise StorageError(f"Failed to list {prefix}: malformed blob entry") from e
            cursor = payload.get('cursor')
            if not payload.get('hasMore') or not cursor:
                return blobs

    async def fetch(self, url: str) -> bytes:
        try:
            response = await self._client.get(url, headers={'Cache-Control': 'no-store'})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to fetch {url}: {e}") from e
        return response.content

    async def delete(self, url: str) -> None:
        try:
            response = await self._client.post(
                f"{self._base_url}/delete", json={'urls': [url]}, headers=self._headers()
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to delete {url}: {e}") from e


# =============================================================================
# JSON snapshot conventions
# =============================================================================

class SnapshotStore:
    """
    JSON document persistence on top of a BlobStore.

    Read helpers never raise: a missing blob, a failed fetch or an invalid
    document all return None. Write helpers raise StorageError so route
    handlers can answer with a 500.
    """

    def __init__(self, blobs: BlobStore) -> None:
        self.blobs = blobs

    async def _find(self, pathname: str) -> Optional[BlobInfo]:
        for blob in await self.blobs.list(pathname):
            if blob.pathname == pathname:
                return blob
        return None

    async def read_json(self, pathname: str) -> Optional[Any]:
        try:
            blob = await self._find(pathname)
            if blob is None:
                logger.info(f"No blob found at {pathname}")
                return None
            return json.loads(await self.blobs.fetch(blob.url))
        except (StorageError, ValueError):
            logger.exception(f"Failed to read {pathname}")
            return None

    async def write_json(self, pathname: str, document: Any) -> None:
        body = json.dumps(document, indent=2, default=str).encode('utf-8')
        try:
            existing = await self._find(pathname)
            if existing is not None:
                await self.blobs.delete(existing.url)
        except StorageError:
            # A stale copy left behind is overwritten by the put below
            logger.warning(f"Could not remove existing blob at {pathname}")
        await self.blobs.put(pathname, body, content_type='application/json', allow_overwrite=True)

    async def delete(self, pathname: str) -> bool:
        existing = await self._find(pathname)
        if existing is None:
            return False
        await self.blobs.delete(existing.url)
        return True

    # -------------------------------------------------------------------------
    # Daily snapshots
    # -------------------------------------------------------------------------

    @staticmethod
    def daily_path(prefix: str, day: str) -> str:
        return f"{prefix}/daily/{day}.json"

    @staticmethod
    def latest_path(prefix: str) -> str:
        return f"{prefix}/latest.json"

    async def save_daily_snapshot(self, prefix: str, day: str, document: Dict[str, Any]) -> None:
        await self.write_json(self.daily_path(prefix, day), document)
        await self.write_json(self.latest_path(prefix), document)

    async def get_daily_snapshot(self, prefix: str, day: str) -> Optional[Dict[str, Any]]:
        return await self.read_json(self.daily_path(prefix, day))

    async def get_latest_snapshot(self, prefix: str) -> Optional[Dict[str, Any]]:
        return await self.read_json(self.latest_path(prefix))

    async def list_dates(self, prefix: str) -> List[str]:
        """Sorted, distinct dates found in pathnames under ``prefix``."""
        try:
            blobs = await self.blobs.list(prefix)
        except StorageError:
            logger.exception(f"Failed to list dates under {prefix}")
            return []
        dates = set()
        for blob in blobs:
            match = DATE_IN_PATH_PATTERN.search(blob.pathname)
            if match:
                dates.add(match.group(1))
        return sorted(dates)

    async def clear_prefix(self, prefix: str) -> int:
        blobs = await self.blobs.list(prefix)
        for blob in blobs:
            await self.blobs.delete(blob.url)
        logger.info(f"Cleared {len(blobs)} blobs under {prefix}")
        return len(blobs)
