"""API version gating for Docker-compatible engines.

Docker, Podman and friends negotiate different Engine API versions. Fields
that an older engine does not understand make container creation fail, so
requests are sanitized against the negotiated version before being sent.
"""

import copy
import logging
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger('imgcompat.engine_compat')


# Minimum Engine API version per gated feature
NETWORK_SCOPED_MAC_ADDRESS_MIN_API_VERSION = "1.44"

FEATURE_MIN_API_VERSIONS = {
    'network_mac_address': NETWORK_SCOPED_MAC_ADDRESS_MIN_API_VERSION,
}


class InvalidVersionString(ValueError):
    """An API version that is not a dotted list of integers."""


def parse_api_version(version: str) -> Tuple[int, ...]:
    """Parse '1.44', 'v1.44.1' etc. into a tuple of ints.

    Raises InvalidVersionString for anything else.
    """
    text = (version or '').strip()
    if text.startswith('v'):
        text = text[1:]
    if not text:
        raise InvalidVersionString(f"empty API version {version!r}")

    parts = []
    for part in text.split('.'):
        part = part.strip()
        if not (part.isascii() and part.isdigit()):
            raise InvalidVersionString(f"invalid API version {version!r}")
        parts.append(int(part))
    return tuple(parts)


def is_api_version_at_least(current: str, minimum: str) -> bool:
    """
    Compare two API versions component-wise.

    Missing trailing components count as zero, so '1.44' == '1.44.0'.
    Unparseable input on either side yields False.
    """
    try:
        cur = parse_api_version(current)
        min_v = parse_api_version(minimum)
    except InvalidVersionString as e:
        logger.debug(f"API version comparison failed closed: {e}")
        return False

    width = max(len(cur), len(min_v))
    cur = cur + (0,) * (width - len(cur))
    min_v = min_v + (0,) * (width - len(min_v))
    return cur >= min_v


def supports_per_network_mac_address(api_version: str) -> bool:
    """Whether container create accepts a per-network MacAddress (API >= 1.44)."""
    return is_api_version_at_least(api_version, NETWORK_SCOPED_MAC_ADDRESS_MIN_API_VERSION)


def supports_feature(api_version: str, feature: str) -> bool:
    minimum = FEATURE_MIN_API_VERSIONS.get(feature)
    if minimum is None:
        logger.debug(f"Unknown gated feature '{feature}'")
        return False
    return is_api_version_at_least(api_version, minimum)


def sanitize_endpoint_settings(settings: Optional[Dict[str, Any]],
                               api_version: str) -> Optional[Dict[str, Any]]:
    """
    Copy per-network endpoint settings, dropping fields the engine can't take.

    Args:
        settings: Mapping of network name -> EndpointSettings dict
            (MacAddress, IPAddress, Aliases, ...) as returned by the Engine API
        api_version: Negotiated Engine API version

    Returns:
        A new mapping with one shallow-copied entry per network, or None for
        empty input. The caller's mapping and entries are never modified.
    """
    if not settings:
        return None

    keep_mac = supports_per_network_mac_address(api_version)
    cloned = {}
    for network, endpoint in settings.items():
        if endpoint is None:
            cloned[network] = None
            continue

        endpoint_copy = dict(endpoint)
        if not keep_mac and endpoint_copy.get('MacAddress'):
            logger.debug(
                f"Dropping MacAddress for network '{network}' (API {api_version or 'unknown'} "
                f"< {NETWORK_SCOPED_MAC_ADDRESS_MIN_API_VERSION})"
            )
            endpoint_copy['MacAddress'] = ''
        cloned[network] = endpoint_copy

    return cloned


def sanitize_create_body(body: Dict[str, Any], api_version: str) -> Dict[str, Any]:
    """Return a container-create body safe to send to the given API version.

    Only NetworkingConfig.EndpointsConfig is rewritten; everything else is
    carried over unchanged and the input body is left as is.
    """
    result = copy.copy(body)
    networking = body.get('NetworkingConfig')
    if not networking:
        return result

    networking = dict(networking)
    endpoints = sanitize_endpoint_settings(networking.get('EndpointsConfig'), api_version)
    if endpoints is None:
        networking.pop('EndpointsConfig', None)
    else:
        networking['EndpointsConfig'] = endpoints
    result['NetworkingConfig'] = networking
    return result
