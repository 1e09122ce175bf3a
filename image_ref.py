"""Image reference parsing and canonicalization.

Turns arbitrary image reference strings (``nginx``, ``ghcr.io/org/app:v1``,
``localhost:5000/img@sha256:...``) into a ``(registry_host, repository, tag)``
triple, and produces a canonical string form used for equality checks.
"""

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger('imgcompat.image_ref')


# Constants
DEFAULT_REGISTRY = "docker.io"
DEFAULT_NAMESPACE = "library"
DEFAULT_TAG = "latest"

# Spellings of the public hub that all mean the same registry
DOCKER_HUB_ALIASES = {
    "docker.io",
    "index.docker.io",
    "registry-1.docker.io",
    "registry.docker.io",
    "registry.hub.docker.com",
}


# ---------------------------------------------------------------------------
# Reference grammar (distribution/reference)
# ---------------------------------------------------------------------------

_ALPHANUMERIC = r'[a-z0-9]+'
_SEPARATOR = r'(?:[._]|__|[-]+)'
_PATH_COMPONENT = rf'{_ALPHANUMERIC}(?:{_SEPARATOR}{_ALPHANUMERIC})*'
_DOMAIN_COMPONENT = r'(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])'
_IPV6 = r'\[(?:[a-fA-F0-9:]+)\]'
_HOST = rf'(?:{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*|{_IPV6})'
_DOMAIN = rf'{_HOST}(?::[0-9]+)?'
_TAG = r'[\w][\w.-]{0,127}'
_DIGEST = r'[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}'

REFERENCE_RE = re.compile(
    rf'^(?P<name>(?:{_DOMAIN}/)?{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*)'
    rf'(?::(?P<tag>{_TAG}))?'
    rf'(?:@(?P<digest>{_DIGEST}))?$'
)
_DOMAIN_RE = re.compile(rf'^{_DOMAIN}$')
_IDENTIFIER_RE = re.compile(r'^[a-f0-9]{64}$')

NAME_TOTAL_LENGTH_MAX = 255


class ReferenceParseFallback(ValueError):
    """Raised internally when the structured grammar rejects a reference."""


@dataclass(frozen=True)
class ImageReference:
    """Canonical registry host, repository path and tag of an image."""
    registry_host: str
    repository: str
    tag: str = DEFAULT_TAG

    def __str__(self) -> str:
        return f"{self.registry_host}/{self.repository}:{self.tag}"


def normalize_registry_host(host: str) -> str:
    """Collapse equivalent registry host spellings to one value.

    Strips URL schemes, trailing slashes and ``/v1`` / ``/v2`` API suffixes,
    lower-cases the result and maps every Docker Hub alias to ``docker.io``.
    An empty host is the public registry.
    """
    host = (host or '').strip().lower()
    for prefix in ('https://', 'http://'):
        if host.startswith(prefix):
            host = host[len(prefix):]
    host = host.rstrip('/')
    for suffix in ('/v1', '/v2'):
        if host.endswith(suffix):
            host = host[:-len(suffix)]
    host = host.rstrip('/')

    if not host or host in DOCKER_HUB_ALIASES:
        return DEFAULT_REGISTRY
    return host


def _looks_like_registry(component: str) -> bool:
    # Registry indicators: contains '.', is localhost, or has port ':'
    return '.' in component or ':' in component or component == 'localhost'


def extract_registry_host(image_ref: str) -> str:
    """Return the registry part of a reference, ``docker.io`` when implicit."""
    parts = image_ref.split('/', 1)
    if len(parts) > 1 and _looks_like_registry(parts[0]):
        return parts[0]
    return DEFAULT_REGISTRY


def _canonicalize(host: str, repository: str, tag: str) -> ImageReference:
    host = normalize_registry_host(host)
    # Official images live under library/ on the public hub
    if host == DEFAULT_REGISTRY and repository and '/' not in repository:
        repository = f"{DEFAULT_NAMESPACE}/{repository}"
    return ImageReference(host, repository, tag or DEFAULT_TAG)


def _split_domain(name: str) -> tuple:
    i = name.find('/')
    if i == -1:
        return DEFAULT_REGISTRY, name
    first = name[:i]
    if not _looks_like_registry(first):
        return DEFAULT_REGISTRY, name
    return first, name[i + 1:]


def _parse_structured(image_ref: str) -> ImageReference:
    """Parse with the reference grammar, raising ReferenceParseFallback."""
    if _IDENTIFIER_RE.match(image_ref):
        raise ReferenceParseFallback(
            f"invalid repository name {image_ref!r}: cannot be a 64-byte hex string"
        )

    domain, remainder = _split_domain(image_ref)
    if domain != DEFAULT_REGISTRY and not _DOMAIN_RE.match(domain):
        raise ReferenceParseFallback(f"invalid registry domain in {image_ref!r}")

    # Strip tag/digest before the case check so that tags may be upper-case
    path = remainder.split('@', 1)[0]
    last_colon = path.rfind(':')
    if last_colon != -1:
        path = path[:last_colon]
    if path.lower() != path:
        raise ReferenceParseFallback(f"repository name must be lowercase: {image_ref!r}")

    match = REFERENCE_RE.match(f"{domain}/{remainder}")
    if not match:
        raise ReferenceParseFallback(f"invalid reference format: {image_ref!r}")
    if len(match.group('name')) > NAME_TOTAL_LENGTH_MAX:
        raise ReferenceParseFallback(f"repository name too long: {image_ref!r}")

    name_domain, repository = match.group('name').split('/', 1)
    # A digest-only reference still carries the default tag
    return _canonicalize(name_domain, repository, match.group('tag') or DEFAULT_TAG)


def _parse_heuristic(image_ref: str) -> ImageReference:
    """Best-effort parse for references the grammar rejects."""
    host = extract_registry_host(image_ref)

    # Strip digest qualifier (@sha256:...)
    at_pos = image_ref.find('@')
    if at_pos != -1:
        image_ref = image_ref[:at_pos]

    # Strip tag, but only when the colon is in the *tag* position
    # (after the last slash), not in a registry:port position.
    tag = DEFAULT_TAG
    last_slash = image_ref.rfind('/')
    last_colon = image_ref.rfind(':')
    if last_colon > last_slash:
        tag = image_ref[last_colon + 1:] or DEFAULT_TAG
        image_ref = image_ref[:last_colon]

    parts = image_ref.split('/')
    if len(parts) > 1 and _looks_like_registry(parts[0]):
        repository = '/'.join(parts[1:])
    else:
        repository = image_ref

    return _canonicalize(host, repository, tag)


def parse_image_ref(image_ref: str) -> ImageReference:
    """
    Split an image reference into registry host, repository and tag.

    Args:
        image_ref: Reference such as 'nginx', 'ghcr.io/org/app:v1.2.3' or
            'docker.io/library/redis@sha256:...'

    Returns:
        ImageReference with a canonical host and a non-empty tag
    """
    image_ref = (image_ref or '').strip()
    try:
        return _parse_structured(image_ref)
    except ReferenceParseFallback as e:
        logger.debug(f"Falling back to heuristic parsing: {e}")
        return _parse_heuristic(image_ref)


def normalize_ref(image_ref: str) -> str:
    """Canonical lower-cased ``host/repository:tag`` form for equality tests."""
    at_pos = image_ref.find('@')
    if at_pos != -1:
        image_ref = image_ref[:at_pos]
    return str(parse_image_ref(image_ref)).lower()


def refs_equal(a: str, b: str) -> bool:
    return normalize_ref(a) == normalize_ref(b)
