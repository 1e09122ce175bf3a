"""
Docker Engine API client over the Unix socket.

Only the read-side calls needed for update detection are exposed: image
inspection, image listing and API version discovery. Works against Docker
and Podman's Docker-compatible socket alike.
"""

import logging
import socket as _socket
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter as _HTTPAdapter
from urllib3.connection import HTTPConnection as _HTTPConnection
from urllib3.connectionpool import HTTPConnectionPool as _HTTPConnectionPool

from settings import DEFAULT_DOCKER_SOCKET, DEFAULT_REQUEST_TIMEOUT

logger = logging.getLogger('imgcompat.engine_client')


class EngineError(Exception):
    """Unexpected response from the container engine."""


class ImageNotFoundError(EngineError):
    """The engine has no image under the requested reference."""


class _UnixSocketConnection(_HTTPConnection):
    """HTTPConnection that connects via a Unix domain socket."""

    def __init__(self, socket_path: str):
        super().__init__('localhost')
        self._socket_path = socket_path

    def connect(self):
        sock = _socket.socket(_socket.AF_UNIX, _socket.SOCK_STREAM)
        sock.connect(self._socket_path)
        self.sock = sock


class _UnixSocketPool(_HTTPConnectionPool):
    """Connection pool backed by a Unix domain socket."""

    def __init__(self, socket_path: str):
        super().__init__('localhost')
        self._socket_path = socket_path

    def _new_conn(self):
        return _UnixSocketConnection(self._socket_path)


class _UnixSocketAdapter(_HTTPAdapter):
    """requests adapter that routes all requests through a Unix socket."""

    def __init__(self, socket_path: str):
        self._socket_path = socket_path
        super().__init__()

    def get_connection(self, url: str, proxies=None):
        return _UnixSocketPool(self._socket_path)

    # Needed in requests >= 2.32 / urllib3 >= 2.x
    def get_connection_with_tls_context(self, request, verify, proxies=None, cert=None):
        return _UnixSocketPool(self._socket_path)


class DockerClient:
    """Minimal Docker Engine API client over the Unix socket.

    Args:
        socket_path: Path of the engine socket
        timeout: Default per-request timeout in seconds
        api_version: Pin requests to this API version (e.g. '1.43'); when
            empty the daemon's default version is used
    """

    def __init__(self, socket_path: str = DEFAULT_DOCKER_SOCKET,
                 timeout: float = DEFAULT_REQUEST_TIMEOUT, api_version: str = ''):
        self.timeout = timeout
        self.pinned_api_version = api_version.strip().lstrip('v')
        self._session = requests.Session()
        self._session.mount('http+unix://', _UnixSocketAdapter(socket_path))

    def _url(self, path: str) -> str:
        if self.pinned_api_version:
            return f'http+unix://docker/v{self.pinned_api_version}{path}'
        return f'http+unix://docker{path}'

    def get(self, path: str, timeout: Optional[float] = None, **kwargs) -> requests.Response:
        r = self._session.get(self._url(path), timeout=timeout or self.timeout, **kwargs)
        r.raise_for_status()
        return r

    def inspect_image(self, ref: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Inspect a local image by name, tag, digest or ID.

        Returns:
            The engine's image JSON (Id, RepoDigests, RepoTags, ...)

        Raises:
            ImageNotFoundError: the engine has no such image
            requests.RequestException: transport failure or other HTTP error
        """
        try:
            response = self.get(f'/images/{quote(ref, safe="/:@")}/json', timeout=timeout)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 404:
                raise ImageNotFoundError(f"No such image: {ref}") from e
            raise
        return response.json()

    def list_images(self, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """List all local images (Id, RepoTags, RepoDigests, ...)."""
        response = self.get('/images/json', timeout=timeout)
        return response.json() or []

    def api_version(self, timeout: Optional[float] = None) -> str:
        """
        Return the Engine API version requests are made with.

        The pinned version wins; otherwise the daemon is asked via /version.
        An unreachable daemon yields '' which every version gate treats as
        unsupported.
        """
        if self.pinned_api_version:
            return self.pinned_api_version

        try:
            response = self.get('/version', timeout=timeout)
            return (response.json().get('ApiVersion') or '').strip()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Could not determine engine API version: {e}")
            return ''
