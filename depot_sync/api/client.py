"""
Async client for a Builder-style package depot HTTP API.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import aiofiles
import aiohttp

from depot_sync.crypto.keys import public_key_filename
from depot_sync.exceptions import DepotApiError
from depot_sync.models.ident import PackageIdent, PackageTarget, ResolvedPackage

from .rate_limiter import AdaptiveRateLimiter, parse_retry_after

log = logging.getLogger(__name__)

# Called with (bytes_so_far, total_bytes_or_None) while a file streams in
ProgressCallback = Callable[[int, Optional[int]], None]

CHUNK_SIZE = 262144  # 256 KB


def _seg(value: str) -> str:
    return quote(value, safe="")


class DepotClient:
    """
    Async client for the depot's package and key endpoints.

    Features:
    - Latest-in-channel and exact package resolution
    - Streaming artifact and key downloads written atomically
    - Adaptive rate limiting
    - Connection pooling
    """

    API_PREFIX = "/v1/depot"

    def __init__(
        self,
        base_url: str,
        product: str,
        version: str,
        max_workers: int = 8,
        timeout: float = 60.0,
    ):
        """
        Initializes the depot client.

        Args:
            base_url: Root URL of the depot, e.g. ``https://bldr.habitat.sh``.
            product: Product name sent in the User-Agent handshake.
            version: Product version sent in the User-Agent handshake.
            max_workers: The number of concurrent workers, used to tune the connection pool.
            timeout: Total timeout for a single request, in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.product = product
        self.version = version
        self.max_workers = max_workers
        self.timeout = timeout

        self._session: Optional[aiohttp.ClientSession] = None
        self._rate_limiter = AdaptiveRateLimiter()

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_workers * 2,
                limit_per_host=self.max_workers,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={
                    "User-Agent": f"{self.product}/{self.version}",
                    "Accept": "application/json",
                },
                timeout=aiohttp.ClientTimeout(
                    total=self.timeout, sock_connect=15, sock_read=self.timeout
                ),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "DepotClient":
        await self._initialize_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.API_PREFIX}{path}"

    @staticmethod
    def _auth_headers(token: Optional[str]) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _raise_for_status(self, r: aiohttp.ClientResponse) -> None:
        if r.status < 400:
            return
        if r.status == 429:
            await self._rate_limiter.on_429(
                parse_retry_after(r.headers.get("Retry-After"))
            )
        try:
            body = (await r.text()).strip()
        except (aiohttp.ClientError, UnicodeDecodeError):
            body = ""
        raise DepotApiError(r.status, body[:200] or r.reason or "")

    async def _get_json(
        self, path: str, token: Optional[str], params: Dict[str, str]
    ) -> Dict[str, Any]:
        await self._initialize_session()
        await self._rate_limiter.acquire()
        url = self._url(path)
        log.debug(f"GET {url} {params}")
        async with self._session.get(
            url, params=params, headers=self._auth_headers(token)
        ) as r:
            await self._raise_for_status(r)
            return await r.json(content_type=None)

    async def _download(
        self,
        path: str,
        token: Optional[str],
        params: Dict[str, str],
        destination: Path,
        progress: Optional[ProgressCallback],
    ) -> Path:
        """
        Streams a response body to ``destination``.

        The body is written to a ``.part`` file first and renamed into place once
        complete, so the final path only ever holds a whole file.
        """
        await self._initialize_session()
        await self._rate_limiter.acquire()
        url = self._url(path)
        temp_path = destination.with_name(destination.name + ".part")
        log.debug(f"GET {url} -> {destination}")
        try:
            async with self._session.get(
                url, params=params, headers=self._auth_headers(token)
            ) as r:
                await self._raise_for_status(r)
                total = r.content_length
                received = 0
                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in r.content.iter_chunked(CHUNK_SIZE):
                        await f.write(chunk)
                        received += len(chunk)
                        if progress:
                            progress(received, total)
            await asyncio.to_thread(os.replace, temp_path, destination)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
        return destination

    # Public API Methods
    async def resolve_latest(
        self,
        ident: PackageIdent,
        target: PackageTarget,
        channel: str,
        token: Optional[str] = None,
    ) -> ResolvedPackage:
        """
        Resolves an identifier to one release and its transitive dependencies.

        Fully-qualified identifiers are looked up exactly, whatever the channel
        holds; partial ones resolve to the latest matching release in ``channel``.

        Raises:
            DepotApiError: With status 404 when nothing matches.
        """
        if ident.fully_qualified:
            path = (
                f"/pkgs/{_seg(ident.origin)}/{_seg(ident.name)}/"
                f"{_seg(ident.version)}/{_seg(ident.release)}"
            )
        else:
            path = f"/channels/{_seg(ident.origin)}/{_seg(channel)}/pkgs/{_seg(ident.name)}"
            if ident.version:
                path += f"/{_seg(ident.version)}"
            path += "/latest"
        data = await self._get_json(path, token, {"target": str(target)})
        return ResolvedPackage.from_json(data, target)

    async def fetch_artifact(
        self,
        ident: PackageIdent,
        target: PackageTarget,
        token: Optional[str],
        dest_dir: Path,
        progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """
        Downloads a fully-qualified package's artifact into ``dest_dir``.

        Raises:
            DepotApiError: With status 501 when the depot does not serve ``target``.
        """
        destination = Path(dest_dir) / ident.archive_name(target)
        path = (
            f"/pkgs/{_seg(ident.origin)}/{_seg(ident.name)}/"
            f"{_seg(ident.version)}/{_seg(ident.release)}/download"
        )
        return await self._download(
            path, token, {"target": str(target)}, destination, progress
        )

    async def fetch_signer_key(
        self,
        signer_name: str,
        revision: str,
        token: Optional[str],
        dest_dir: Path,
        progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """Downloads the public key ``<signer_name>-<revision>`` into ``dest_dir``."""
        destination = Path(dest_dir) / public_key_filename(signer_name, revision)
        path = f"/origins/{_seg(signer_name)}/keys/{_seg(revision)}"
        return await self._download(path, token, {}, destination, progress)
