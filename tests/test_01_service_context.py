import hashlib

import pytest
from cryptojwt.key_jar import KeyJar
from oidcmsg.oidc import ProviderConfigurationResponse

from oidcpipeline.service_context import ServiceContext


def test_client_info_init():
    config = {
        'client_id': 'client_id', 'issuer': 'issuer',
        'client_secret': 'client_secret', 'base_url': 'https://example.com',
    }
    ci = ServiceContext(config=config)
    for attr in config.keys():
        val = getattr(ci, attr)
        assert val == config[attr]


def test_defaults():
    ci = ServiceContext()
    assert ci.client_id == ''
    assert ci.redirect_uris == []
    assert ci.provider_info == {}
    assert ci.behaviour == {}
    assert ci.allow == {}
    assert ci.clock_skew == 15
    assert isinstance(ci.keyjar, KeyJar)


def test_no_registration_leftovers():
    ci = ServiceContext(config={'client_id': 'client_id',
                                'redirect_uris': ['https://example.com/cb']})
    assert not hasattr(ci, 'kid')
    assert not hasattr(ci, 'register_args')
    with pytest.raises(KeyError):
        _ = ci['register_args']


def test_defaults_are_not_shared():
    ci1 = ServiceContext()
    ci2 = ServiceContext()
    ci1.behaviour['response_types'] = ['code']
    assert ci2.behaviour == {}


def test_set_and_get_client_secret():
    ci = ServiceContext()
    ci.client_secret = 'supersecret'
    assert ci.client_secret == 'supersecret'


def test_set_and_get_client_id():
    ci = ServiceContext()
    ci.client_id = 'myself'
    assert ci.client_id == 'myself'
    assert ci['client_id'] == 'myself'


def test_client_secret_as_symmetric_key():
    ci = ServiceContext(config={'client_secret': 'a longer secret value'})
    assert ci.keyjar.get_issuer_keys('')


def test_client_filename():
    config = {
        'client_id': 'client_id', 'issuer': 'issuer',
        'client_secret': 'client_secret', 'base_url': 'https://example.com',
    }
    ci = ServiceContext(config=config)
    fname = ci.filename_from_webname('https://example.com/rq12345')
    assert fname == 'rq12345'


def test_client_filename_wrong_base():
    ci = ServiceContext(config={'base_url': 'https://example.com'})
    with pytest.raises(ValueError):
        ci.filename_from_webname('https://example.org/rq12345')


def test_set_message_value():
    ci = ServiceContext()
    pcr = ProviderConfigurationResponse(
        issuer='https://example.com',
        authorization_endpoint='https://example.com/authz')
    ci.set('provider_info', pcr)
    assert isinstance(ci.provider_info, dict)
    assert ci.provider_info['authorization_endpoint'] == \
           'https://example.com/authz'


def test_requests_dir_created(tmp_path):
    _dir = str(tmp_path / 'requests')
    ServiceContext(config={'requests_dir': _dir})
    assert tmp_path.joinpath('requests').is_dir()


class TestClientInfo(object):
    @pytest.fixture(autouse=True)
    def create_client_info_instance(self):
        config = {
            'client_id': 'client_id', 'issuer': 'https://example.com/op',
            'client_secret': 'client_secret', 'base_url': 'https://example.com',
            'allow': {'issuer_mismatch': True}
        }
        self.ci = ServiceContext(config=config)

    def test_get_sign_alg_from_behaviour(self):
        self.ci.behaviour = {'id_token_signed_response_alg': 'ES256'}
        self.ci.provider_info = {
            'id_token_signing_alg_values_supported': ['RS256']}
        assert self.ci.get_sign_alg('id_token') == 'ES256'

    def test_get_sign_alg_from_provider_info(self):
        self.ci.provider_info = {
            'request_object_signing_alg_values_supported': ['PS256', 'RS256']}
        assert self.ci.get_sign_alg('request_object') == 'PS256'

    def test_get_sign_alg_unknown(self):
        assert self.ci.get_sign_alg('userinfo') is None

    def test_generate_request_uris(self):
        _uris = self.ci.generate_request_uris('/leading')
        _hash = hashlib.sha256()
        _hash.update(b'https://example.com/op')
        _hash.update(b'https://example.com')
        assert _uris == [
            'https://example.com/leading/{}'.format(_hash.hexdigest())]

    def test_generate_request_uris_relative_path(self):
        _uris = self.ci.generate_request_uris('requests')
        assert _uris[0].startswith('https://example.com/requests/')

    def test_generate_request_uris_prefers_provider_issuer(self):
        _uris = self.ci.generate_request_uris('/leading')
        self.ci.provider_info = {'issuer': 'https://other.example.com'}
        assert self.ci.generate_request_uris('/leading') != _uris

    def test_is_allowed(self):
        assert self.ci.is_allowed('issuer_mismatch')
        assert not self.ci.is_allowed('http_links')

    def test_item_access(self):
        self.ci['issuer'] = 'https://op.example.org'
        assert self.ci.get('issuer') == 'https://op.example.org'
        assert 'issuer' in self.ci
        with pytest.raises(KeyError):
            _ = self.ci['no_such_attribute']

