"""Tests for Engine API version gating and request sanitization."""

import copy

import pytest

from engine_compat import (
    InvalidVersionString,
    is_api_version_at_least,
    parse_api_version,
    sanitize_create_body,
    sanitize_endpoint_settings,
    supports_feature,
    supports_per_network_mac_address,
)


@pytest.fixture
def endpoints():
    return {
        'bridge': {
            'MacAddress': '02:42:ac:11:00:02',
            'IPAddress': '172.17.0.2',
            'Aliases': ['svc', 'svc-1'],
        },
        'custom': {
            'MacAddress': '02:42:ac:11:00:03',
            'IPAddress': '10.0.0.10',
            'Aliases': ['custom-svc'],
        },
    }


class TestVersionComparison:

    @pytest.mark.parametrize('current, minimum, expected', [
        ('1.44', '1.44', True),
        ('1.45', '1.44', True),
        ('1.43', '1.44', False),
        ('1.44.1', '1.44', True),
        ('1.44', '1.44.0', True),
        ('1.44', '1.44.1', False),
        ('1.41', '1.44', False),
        ('v1.44', '1.44', True),
        ('2', '1.44', True),
        ('1.100', '1.44', True),
        ('invalid', '1.44', False),
        ('1.44', 'invalid', False),
        ('', '1.44', False),
        ('1..44', '1.44', False),
        ('1.44-rc1', '1.44', False),
    ])
    def test_is_api_version_at_least(self, current, minimum, expected):
        assert is_api_version_at_least(current, minimum) is expected

    @pytest.mark.parametrize('version', ['1.24', '1.44.1', 'v1.41', '0.0'])
    def test_reflexive(self, version):
        assert is_api_version_at_least(version, version)

    def test_parse_api_version(self):
        assert parse_api_version('v1.44.1') == (1, 44, 1)
        assert parse_api_version(' 1.43 ') == (1, 43)

    def test_parse_rejects_garbage(self):
        with pytest.raises(InvalidVersionString):
            parse_api_version('one.two')
        with pytest.raises(InvalidVersionString):
            parse_api_version(None)


class TestFeatureSupport:

    def test_per_network_mac_address(self):
        assert supports_per_network_mac_address('1.44')
        assert supports_per_network_mac_address('1.46')
        assert not supports_per_network_mac_address('1.43')
        assert not supports_per_network_mac_address('1.41')
        assert not supports_per_network_mac_address('')

    def test_named_feature(self):
        assert supports_feature('1.44', 'network_mac_address')
        assert not supports_feature('1.43', 'network_mac_address')

    def test_unknown_feature_fails_closed(self):
        assert not supports_feature('9.99', 'teleport')


class TestSanitizeEndpointSettings:
    """MacAddress is dropped below API 1.44 without touching the caller's data."""

    def test_strips_mac_below_min_version(self, endpoints):
        original = copy.deepcopy(endpoints)
        out = sanitize_endpoint_settings(endpoints, '1.43')

        assert len(out) == 2
        assert out['bridge']['MacAddress'] == ''
        assert out['custom']['MacAddress'] == ''
        assert out['bridge']['IPAddress'] == '172.17.0.2'
        assert out['bridge']['Aliases'] == ['svc', 'svc-1']
        assert out['custom']['Aliases'] == ['custom-svc']
        # Original map entries are untouched
        assert endpoints == original

    def test_preserves_mac_at_min_version(self, endpoints):
        out = sanitize_endpoint_settings(endpoints, '1.44')
        assert out['bridge']['MacAddress'] == '02:42:ac:11:00:02'
        assert out['custom']['MacAddress'] == '02:42:ac:11:00:03'

    def test_returns_new_objects(self, endpoints):
        out = sanitize_endpoint_settings(endpoints, '1.44')
        assert out is not endpoints
        assert out['bridge'] is not endpoints['bridge']

    def test_invalid_version_strips(self, endpoints):
        out = sanitize_endpoint_settings(endpoints, 'garbage')
        assert out['bridge']['MacAddress'] == ''

    def test_none_entry_kept(self):
        assert sanitize_endpoint_settings({'bridge': None}, '1.43') == {'bridge': None}

    @pytest.mark.parametrize('settings', [None, {}])
    def test_empty_input(self, settings):
        assert sanitize_endpoint_settings(settings, '1.44') is None
        assert sanitize_endpoint_settings(settings, '1.43') is None

    def test_same_settings_reused_across_engines(self, endpoints):
        old = sanitize_endpoint_settings(endpoints, '1.41')
        new = sanitize_endpoint_settings(endpoints, '1.45')
        assert old['bridge']['MacAddress'] == ''
        assert new['bridge']['MacAddress'] == '02:42:ac:11:00:02'


class TestSanitizeCreateBody:

    def test_endpoints_sanitized(self, endpoints):
        body = {
            'Image': 'nginx:latest',
            'HostConfig': {'NetworkMode': 'bridge'},
            'NetworkingConfig': {'EndpointsConfig': endpoints},
        }
        original = copy.deepcopy(body)

        out = sanitize_create_body(body, '1.43')

        assert out['Image'] == 'nginx:latest'
        assert out['HostConfig'] == {'NetworkMode': 'bridge'}
        assert out['NetworkingConfig']['EndpointsConfig']['bridge']['MacAddress'] == ''
        assert body == original

    def test_empty_endpoints_removed(self):
        body = {'Image': 'nginx', 'NetworkingConfig': {'EndpointsConfig': {}}}
        out = sanitize_create_body(body, '1.44')
        assert out['NetworkingConfig'] == {}
        assert body['NetworkingConfig'] == {'EndpointsConfig': {}}

    def test_body_without_networking(self):
        body = {'Image': 'nginx'}
        out = sanitize_create_body(body, '1.43')
        assert out == body
        assert out is not body
