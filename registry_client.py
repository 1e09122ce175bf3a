"""Registry v2 digest lookups.

A single HEAD request against the manifest endpoint returns the
Docker-Content-Digest header without transferring any layers.
"""

import logging
from typing import Iterable, Optional

import requests

from image_ref import DEFAULT_REGISTRY, normalize_registry_host
from settings import DEFAULT_REQUEST_TIMEOUT

logger = logging.getLogger('imgcompat.registry_client')

# Docker Hub's API lives on a different host than its canonical name
DOCKER_HUB_API_HOST = "registry-1.docker.io"
MANIFEST_ACCEPT_HEADER = (
    "application/vnd.docker.distribution.manifest.list.v2+json,"
    "application/vnd.docker.distribution.manifest.v2+json,"
    "application/vnd.oci.image.index.v1+json,"
    "application/vnd.oci.image.manifest.v1+json"
)


class RegistryError(Exception):
    """The registry answered but did not provide a usable digest."""


def registry_scheme(host: str, insecure_registries: Iterable[str] = ()) -> str:
    """Return 'http' for registries configured as insecure, 'https' otherwise."""
    domain = normalize_registry_host(host)
    for registry in insecure_registries:
        registry = normalize_registry_host(registry)
        if registry == domain or registry in domain:
            return 'http'
    return 'https'


class RegistryClient:
    def __init__(self, timeout: float = DEFAULT_REQUEST_TIMEOUT,
                 insecure_registries: Optional[Iterable[str]] = None):
        """
        Initialize the registry client.

        Args:
            timeout: Default per-request timeout in seconds
            insecure_registries: Registries reached over plain http
        """
        self.timeout = timeout
        self.insecure_registries = list(insecure_registries or [])
        self._session = requests.Session()

    def manifest_url(self, registry_host: str, repository: str, tag: str) -> str:
        host = normalize_registry_host(registry_host)
        scheme = registry_scheme(host, self.insecure_registries)
        if host == DEFAULT_REGISTRY:
            host = DOCKER_HUB_API_HOST
        return f"{scheme}://{host}/v2/{repository}/manifests/{tag}"

    def get_latest_digest(self, registry_host: str, repository: str, tag: str,
                          auth_token: Optional[str] = None,
                          timeout: Optional[float] = None) -> str:
        """
        Get the manifest digest for repository:tag via a HEAD request.

        For multi-arch images this is the digest of the manifest list, which is
        what the engine records in RepoDigests after a pull.

        Args:
            registry_host: Registry hostname (canonical or alias)
            repository: Repository path, e.g. 'library/nginx'
            tag: Tag name
            auth_token: Bearer token, if the registry requires one
            timeout: Request timeout in seconds

        Returns:
            Digest string such as 'sha256:...'

        Raises:
            requests.RequestException: transport or HTTP failure
            RegistryError: no Docker-Content-Digest header in the response
        """
        url = self.manifest_url(registry_host, repository, tag)
        headers = {
            'Accept': MANIFEST_ACCEPT_HEADER
        }
        if auth_token:
            headers['Authorization'] = f'Bearer {auth_token}'

        response = self._session.head(url, headers=headers, timeout=timeout or self.timeout)
        response.raise_for_status()

        digest = response.headers.get('Docker-Content-Digest')
        if not digest:
            raise RegistryError(f"Registry did not return a digest for {repository}:{tag}")

        logger.debug(f"Remote digest for {repository}:{tag} is {digest[:19]}...")
        return digest
