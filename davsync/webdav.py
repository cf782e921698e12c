"""WebDAV client for davsync."""

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any, Optional
from urllib.parse import quote, unquote, urlsplit

import httpx

from .exceptions import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    TransportError,
)
from .sync.scanner import Entry
from .utils import TRANSFER_BUFFER_SIZE, normalize_remote_path, parse_http_date

logger = logging.getLogger(__name__)

DAV_NS = "{DAV:}"

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop>'
    "<d:resourcetype/><d:getcontentlength/><d:getlastmodified/>"
    "</d:prop></d:propfind>"
)


class WebDAVClient:
    """Client for a WebDAV server.

    Paths are slash-separated and relative to the server URL, e.g. with
    ``url="http://localhost:5244/dav"`` the path ``/docs/a.txt`` maps to
    ``http://localhost:5244/dav/docs/a.txt``.
    """

    def __init__(
        self,
        url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize WebDAV client.

        Args:
            url: Base URL of the WebDAV share
            username: Optional user for basic authentication
            password: Optional password for basic authentication
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (e.g. httpx.MockTransport)
        """
        self.url = url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout
        self._transport = transport
        self._base_path = unquote(urlsplit(self.url).path).rstrip("/")
        self._client: Optional[httpx.Client] = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            auth = None
            if self.username:
                auth = httpx.BasicAuth(self.username, self.password or "")
            self._client = httpx.Client(
                auth=auth,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                limits=httpx.Limits(max_keepalive_connections=10),
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> "WebDAVClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================================================================
    # Request helpers
    # =========================================================================

    def _url(self, path: str, collection: bool = False) -> str:
        path = normalize_remote_path(path)
        if collection and not path.endswith("/"):
            path += "/"
        return self.url + quote(path)

    def _handle_http_error(self, e: httpx.HTTPStatusError, path: str) -> None:
        """Translate an HTTP error status into a davsync exception.

        Raises:
            NotFoundError: On 404
            AuthenticationError: On 401
            PermissionDeniedError: On 403
            TransportError: On any other status
        """
        status_code = e.response.status_code
        method = e.request.method

        if status_code == 401:
            raise AuthenticationError(
                "Invalid credentials or unauthorized access"
            ) from e
        elif status_code == 403:
            raise PermissionDeniedError(
                f"Access forbidden to {path} - check your permissions"
            ) from e
        elif status_code == 404:
            raise NotFoundError(f"Remote path not found: {path}") from e
        raise TransportError(
            f"{method} {path} failed with status {status_code}"
        ) from e

    def _check_response(self, response: httpx.Response, path: str) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._handle_http_error(e, path)

    def _request(
        self,
        method: str,
        path: str,
        collection: bool = False,
        accept: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and map failures to davsync exceptions.

        Args:
            method: HTTP (or WebDAV) method
            path: Remote path
            collection: Address the path as a collection (trailing slash)
            accept: Error status codes returned to the caller instead of
                being raised
            **kwargs: Additional arguments passed to httpx

        Returns:
            The httpx response
        """
        client = self._get_client()
        try:
            response = client.request(method, self._url(path, collection), **kwargs)
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e

        if response.status_code not in accept:
            self._check_response(response, path)
        return response

    # =========================================================================
    # PROPFIND
    # =========================================================================

    def _propfind(self, path: str, depth: int) -> list[Entry]:
        response = self._request(
            "PROPFIND",
            path,
            collection=depth > 0,
            content=PROPFIND_BODY,
            headers={"Depth": str(depth), "Content-Type": "application/xml"},
        )
        try:
            return self._parse_multistatus(response.content)
        except ET.ParseError as e:
            raise TransportError(f"Invalid PROPFIND response for {path}: {e}") from e

    def _href_to_path(self, href: str) -> str:
        """Map an href of a multistatus response to a remote path."""
        path = unquote(urlsplit(href).path)
        base = self._base_path
        if base and (path == base or path.startswith(base + "/")):
            path = path[len(base) :]
        return normalize_remote_path(path)

    def _parse_multistatus(self, content: bytes) -> list[Entry]:
        root = ET.fromstring(content)
        entries = []
        for response in root.iter(f"{DAV_NS}response"):
            href = response.findtext(f"{DAV_NS}href")
            if not href:
                continue

            is_dir = False
            size = 0
            mtime = 0.0
            for propstat in response.iter(f"{DAV_NS}propstat"):
                status = propstat.findtext(f"{DAV_NS}status") or ""
                if status and " 200" not in status:
                    continue
                prop = propstat.find(f"{DAV_NS}prop")
                if prop is None:
                    continue
                resourcetype = prop.find(f"{DAV_NS}resourcetype")
                if resourcetype is not None:
                    is_dir = resourcetype.find(f"{DAV_NS}collection") is not None
                length = prop.findtext(f"{DAV_NS}getcontentlength")
                if length and length.strip().isdigit():
                    size = int(length.strip())
                modified = prop.findtext(f"{DAV_NS}getlastmodified")
                if modified:
                    mtime = parse_http_date(modified) or 0.0

            entries.append(
                Entry(
                    path=self._href_to_path(href),
                    is_dir=is_dir,
                    mtime=mtime,
                    size=0 if is_dir else size,
                )
            )
        return entries

    # =========================================================================
    # RemoteStore operations
    # =========================================================================

    def list(self, path: str) -> list[Entry]:
        """List the direct children of a remote directory.

        Args:
            path: Remote directory path

        Returns:
            Entries of the children; the directory itself is not included

        Raises:
            NotFoundError: If the directory does not exist
            TransportError: If the request fails
        """
        path = normalize_remote_path(path)
        entries = self._propfind(path, depth=1)
        return [e for e in entries if e.path != path]

    def stat(self, path: str) -> Entry:
        """Get metadata of a single remote path.

        Raises:
            NotFoundError: If the path does not exist
            TransportError: If the request fails
        """
        path = normalize_remote_path(path)
        entries = self._propfind(path, depth=0)
        if not entries:
            raise TransportError(f"Empty PROPFIND response for {path}")
        entry = entries[0]
        if entry.path != path:
            entry = Entry(
                path=path, is_dir=entry.is_dir, mtime=entry.mtime, size=entry.size
            )
        return entry

    def exists(self, path: str) -> bool:
        """Check whether a remote file or directory exists."""
        try:
            self.stat(path)
        except NotFoundError:
            return False
        return True

    @contextmanager
    def read_stream(self, path: str) -> Iterator[Iterator[bytes]]:
        """Open a remote file for streaming.

        Yields:
            Iterator over the file content in chunks

        Raises:
            NotFoundError: If the file does not exist
            TransportError: If the request or the stream fails
        """
        client = self._get_client()
        try:
            with client.stream("GET", self._url(path)) as response:
                self._check_response(response, path)
                yield response.iter_bytes(chunk_size=TRANSFER_BUFFER_SIZE)
        except httpx.RequestError as e:
            raise TransportError(f"Network error during download: {e}") from e

    def write_stream(
        self, path: str, chunks: Iterable[bytes], mtime: Optional[float] = None
    ) -> None:
        """Upload a file from an iterable of byte chunks.

        Args:
            path: Remote file path
            chunks: File content
            mtime: Modification time sent as ``X-OC-Mtime``; servers that
                support the header keep it as the remote timestamp
        """
        headers = {"Content-Type": "application/octet-stream"}
        if mtime is not None:
            headers["X-OC-Mtime"] = str(int(mtime))
        self._request("PUT", path, content=iter(chunks), headers=headers)
        logger.debug(f"Uploaded {path}")

    def make_dir(self, path: str) -> None:
        """Create a remote directory and any missing parents.

        Existing directories are accepted; an existing file in the way is
        an error.

        Raises:
            TransportError: If a segment cannot be created
        """
        current = ""
        for segment in normalize_remote_path(path).strip("/").split("/"):
            if not segment:
                continue
            current = f"{current}/{segment}"
            response = self._request(
                "MKCOL", current, collection=True, accept=(405, 409)
            )
            if response.is_success:
                logger.debug(f"Created remote directory {current}")
                continue

            # 405: something already exists at this path
            try:
                entry = self.stat(current)
            except NotFoundError:
                raise TransportError(
                    f"Failed to create directory {current}: "
                    f"status {response.status_code}"
                ) from None
            if not entry.is_dir:
                raise TransportError(
                    f"Failed to create directory {current}: a file exists at this path"
                )

    def remove(self, path: str) -> None:
        """Remove a remote file or empty directory.

        Raises:
            NotFoundError: If the path does not exist
        """
        self._request("DELETE", path)

    def remove_all(self, path: str) -> None:
        """Remove a remote path recursively; a missing path is not an error."""
        try:
            entry = self.stat(path)
        except NotFoundError:
            return

        if entry.is_dir:
            for child in self.list(entry.path):
                self.remove_all(child.path)
        try:
            self.remove(entry.path)
        except NotFoundError:
            pass
