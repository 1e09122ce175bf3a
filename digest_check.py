"""
Image update detection by digest comparison.

Compares the digest recorded for a local image with the digest the registry
currently serves for the same tag, using a HEAD request instead of a pull.
When the registry can't be asked, the caller decides whether to pull and
call compare_with_pulled() instead.

The engine and registry collaborators are duck-typed:

    engine.inspect_image(ref, timeout=None) -> {'Id': ..., 'RepoDigests': [...]}
    engine.list_images(timeout=None) -> [{'Id': ..., 'RepoTags': [...]}, ...]
    registry.get_latest_digest(host, repository, tag, auth_token, timeout=None) -> str
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from engine_client import DockerClient, ImageNotFoundError
from image_ref import ImageReference, normalize_ref, parse_image_ref
from registry_client import RegistryClient
from settings import Settings

logger = logging.getLogger('imgcompat.digest_check')


class CheckError(Exception):
    """Base for failures reported on a CheckResult."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class LocalImageNotFound(CheckError):
    """The image is not present locally; an update is always needed."""


class LocalLookupFailed(CheckError):
    """The engine could not be asked about the local image; inconclusive."""


class RemoteLookupFailed(CheckError):
    """The registry digest could not be fetched; the result is inconclusive."""


class PulledImageInspectFailed(CheckError):
    """The freshly pulled image could not be inspected; inconclusive."""


@dataclass(frozen=True)
class CheckResult:
    """Outcome of a single update check."""
    needs_update: bool = False
    local_digest: str = ''
    remote_digest: str = ''
    error: Optional[Exception] = None
    checked_via_api: bool = False


class DigestChecker:
    def __init__(self, engine: Any, registry: Any):
        """
        Initialize the checker.

        Args:
            engine: Engine client (see module docstring)
            registry: Registry client (see module docstring)
        """
        if engine is None:
            raise ValueError("DigestChecker requires an engine client")
        if registry is None:
            raise ValueError("DigestChecker requires a registry client")
        self.engine = engine
        self.registry = registry

    @classmethod
    def from_settings(cls, settings: Settings) -> 'DigestChecker':
        engine = DockerClient(
            settings.docker_socket,
            timeout=settings.request_timeout,
            api_version=settings.docker_api_version,
        )
        registry = RegistryClient(
            timeout=settings.request_timeout,
            insecure_registries=settings.insecure_registries,
        )
        return cls(engine, registry)

    def check_image_needs_update(self, image_ref: str, auth_token: Optional[str] = None,
                                 timeout: Optional[float] = None) -> CheckResult:
        """
        Check whether a newer image is available without pulling it.

        Args:
            image_ref: Image reference as used to run the container
            auth_token: Registry bearer token, if required
            timeout: Per-request timeout in seconds

        Returns:
            CheckResult. A missing local image always needs an update. If the
            engine or the registry cannot be reached, error is set and
            checked_via_api is False; after a registry failure the caller may
            pull and use compare_with_pulled().
        """
        ref = parse_image_ref(image_ref)
        logger.debug(
            f"Checking {image_ref} (registry={ref.registry_host}, "
            f"repository={ref.repository}, tag={ref.tag})"
        )

        try:
            local_digest = self.local_digest(image_ref, ref, timeout=timeout)
        except LocalImageNotFound as e:
            logger.debug(f"No local digest for {image_ref}: {e}")
            return CheckResult(needs_update=True, error=e)
        except LocalLookupFailed as e:
            logger.debug(f"Local image lookup failed for {image_ref}: {e}")
            return CheckResult(error=e)

        try:
            remote_digest = self.registry.get_latest_digest(
                ref.registry_host, ref.repository, ref.tag, auth_token, timeout=timeout
            )
        except Exception as e:
            logger.debug(f"Remote digest lookup failed for {image_ref}: {e}")
            return CheckResult(
                local_digest=local_digest,
                error=RemoteLookupFailed(f"failed to get remote digest for {ref}: {e}", e),
            )

        needs_update = local_digest != remote_digest
        logger.debug(
            f"Digest comparison for {image_ref}: local={local_digest} "
            f"remote={remote_digest} needs_update={needs_update}"
        )
        return CheckResult(
            needs_update=needs_update,
            local_digest=local_digest,
            remote_digest=remote_digest,
            checked_via_api=True,
        )

    def local_digest(self, image_ref: str, ref: Optional[ImageReference] = None,
                     timeout: Optional[float] = None) -> str:
        """
        Return the digest of the local image behind image_ref.

        Prefers a RepoDigests entry pulled from the same registry/repository,
        then the image ID. Raises LocalImageNotFound when the engine has no
        such image, LocalLookupFailed when the engine can't be asked.
        """
        if ref is None:
            ref = parse_image_ref(image_ref)

        try:
            inspect = self.engine.inspect_image(image_ref, timeout=timeout)
        except ImageNotFoundError as e:
            raise LocalImageNotFound(f"image not found locally: {e}", e) from e
        except Exception as e:
            raise LocalLookupFailed(f"failed to inspect local image: {e}", e) from e

        wanted = (ref.registry_host.lower(), ref.repository.lower())
        for repo_digest in inspect.get('RepoDigests') or []:
            name, sep, digest = repo_digest.partition('@')
            if not sep or not digest:
                continue
            pulled = parse_image_ref(name)
            if (pulled.registry_host.lower(), pulled.repository.lower()) == wanted:
                return digest

        # Content-addressed ID, stable across tags of the same image
        image_id = inspect.get('Id') or ''
        if image_id:
            logger.debug(f"No matching repo digest for {image_ref}, using image ID")
            return image_id

        raise LocalImageNotFound(f"no digest available for image {image_ref}")

    def compare_with_pulled(self, running_image_id: str, pulled_ref: str,
                            timeout: Optional[float] = None) -> CheckResult:
        """
        Compare a running container's image ID with a freshly pulled image.

        This is the fallback after the caller has pulled pulled_ref itself.
        local_digest/remote_digest carry the two image IDs.
        """
        try:
            inspect = self.engine.inspect_image(pulled_ref, timeout=timeout)
        except Exception as e:
            logger.debug(f"Could not inspect pulled image {pulled_ref}: {e}")
            return CheckResult(
                local_digest=running_image_id,
                error=PulledImageInspectFailed(f"failed to inspect new image: {e}", e),
            )

        pulled_id = inspect.get('Id') or ''
        return CheckResult(
            needs_update=running_image_id != pulled_id,
            local_digest=running_image_id,
            remote_digest=pulled_id,
        )

    def get_image_ids_for_ref(self, image_ref: str,
                              timeout: Optional[float] = None) -> Tuple[List[str], Optional[Exception]]:
        """
        Resolve the local image IDs a reference points at.

        Tries a direct inspect first, then scans the image list comparing
        normalized tags, so aliases like 'index.docker.io/library/nginx'
        still find an image tagged 'nginx:latest'.

        Returns:
            Tuple of (image IDs, error). The error is set only when the image
            list itself could not be fetched.
        """
        try:
            inspect = self.engine.inspect_image(image_ref, timeout=timeout)
            if inspect.get('Id'):
                return [inspect['Id']], None
        except Exception as e:
            logger.debug(f"Direct inspect of {image_ref} failed, scanning image list: {e}")

        try:
            images = self.engine.list_images(timeout=timeout)
        except Exception as e:
            logger.debug(f"Failed to list images: {e}")
            return [], e

        wanted = normalize_ref(image_ref)
        ids = []
        for image in images:
            for repo_tag in image.get('RepoTags') or []:
                if normalize_ref(repo_tag) == wanted:
                    ids.append(image.get('Id', ''))
                    break

        return ids, None
