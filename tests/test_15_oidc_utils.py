import os

import pytest
from oidcmsg.message import Message
from oidcmsg.oidc import IdToken
from oidcmsg.oidc import verified_claim_name

from oidcpipeline.exception import MISSING_REQUIRED_VALUE
from oidcpipeline.exception import VALUE_NOT_ALLOWED
from oidcpipeline.oidc import IDT2REG
from oidcpipeline.oidc.utils import AddJwksUriOrJwks
from oidcpipeline.oidc.utils import AddNonce
from oidcpipeline.oidc.utils import AddOidcResponseTypes
from oidcpipeline.oidc.utils import AddPostLogoutRedirectUris
from oidcpipeline.oidc.utils import AddScope
from oidcpipeline.oidc.utils import StoreNonce
from oidcpipeline.oidc.utils import construct_request_uri
from oidcpipeline.oidc.utils import gather_verify_arguments
from oidcpipeline.oidc.utils import id_token_from_response
from oidcpipeline.oidc.utils import response_types_to_grant_types
from oidcpipeline.service import service_factory
from oidcpipeline.service_context import ServiceContext
from oidcpipeline.state_interface import InMemoryStateDataBase


def test_response_types_to_grant_types():
    req_args = ['code']
    assert set(response_types_to_grant_types(req_args)) == {
        'authorization_code'}
    req_args = ['code', 'code id_token']
    assert set(response_types_to_grant_types(req_args)) == {
        'authorization_code', 'implicit'}
    req_args = ['code', 'id_token code', 'code token id_token']
    assert set(response_types_to_grant_types(req_args)) == {
        'authorization_code', 'implicit'}
    assert response_types_to_grant_types(['id_token token']) == ['implicit']


def test_response_types_to_grant_types_unknown():
    with pytest.raises(ValueError):
        response_types_to_grant_types(['code', 'code foo'])


def test_construct_request_uri(tmp_path):
    _dir = os.path.join(str(tmp_path), 'requests')
    filename, webname = construct_request_uri(
        _dir, 'https://example.com/cli/requests/')
    assert os.path.isdir(_dir)
    assert os.path.dirname(filename) == _dir
    assert filename.endswith('.jwt')
    assert webname == 'https://example.com/cli/requests/{}'.format(
        os.path.basename(filename))

    _, webname = construct_request_uri(_dir, 'https://example.com/cli/req')
    assert webname.startswith('https://example.com/cli/req/')


class TestAddScope(object):
    def test_no_scope(self):
        _args = {}
        _post, _errors = AddScope()(_args, None)
        assert _errors == []
        assert _args['scope'] == ['openid']

    def test_openid_present(self):
        _args = {'scope': 'email openid'}
        AddScope()(_args, None)
        assert _args['scope'] == ['email', 'openid']

    def test_idempotent(self):
        _args = {'scope': ['email']}
        AddScope()(_args, None)
        AddScope()(_args, None)
        assert _args['scope'] == ['email', 'openid']

    def test_word_boundary(self):
        _args = {'scope': ['openidx']}
        AddScope()(_args, None)
        assert _args['scope'] == ['openidx', 'openid']

    def test_bad_scope(self):
        _args = {'scope': 12}
        _post, _errors = AddScope()(_args, None)
        assert _errors[0].parameter == 'scope'
        assert _args['scope'] == 12


class TestNonce(object):
    def test_add_nonce(self):
        _args = {'response_type': 'code id_token'}
        AddNonce()(_args, None)
        assert len(_args['nonce']) >= 43

    def test_given_nonce(self):
        _args = {'response_type': ['id_token'], 'nonce': 'foo'}
        AddNonce()(_args, None)
        assert _args['nonce'] == 'foo'

    def test_no_id_token(self):
        _args = {'response_type': ['code token']}
        AddNonce()(_args, None)
        assert 'nonce' not in _args

    def test_store_nonce_without_state(self):
        _post, _errors = StoreNonce()({'nonce': 'foo'}, None)
        assert _errors[0].parameter == 'state'
        assert _errors[0].error_type == MISSING_REQUIRED_VALUE


class TestRegistrationProcessors(object):
    def test_grant_types(self):
        _args = {'response_types': ['code', 'id_token token']}
        _post, _errors = AddOidcResponseTypes()(_args, None)
        assert _errors == []
        assert _args['grant_types'] == ['authorization_code', 'implicit']

    def test_unknown_response_type(self):
        _args = {'response_types': ['code', 'none']}
        _post, _errors = AddOidcResponseTypes()(_args, None)
        assert _errors[0].parameter == 'response_types'
        assert _errors[0].error_type == VALUE_NOT_ALLOWED
        assert 'grant_types' not in _args

    def test_jwks_uri_wins(self):
        _args = {'jwks_uri': 'https://example.com/jwks.json',
                 'jwks': {'keys': []}}
        AddJwksUriOrJwks()(_args, None)
        assert _args == {'jwks_uri': 'https://example.com/jwks.json'}

    def test_jwks_from_configuration(self):
        _service = service_factory(
            'registration', 'oidc',
            service_context=ServiceContext(
                config={'jwks': {'keys': []}, 'client_id': 'client_id'}),
            state_db=InMemoryStateDataBase())
        _args = {}
        AddJwksUriOrJwks()(_args, _service)
        assert _args == {'jwks': {'keys': []}}

    def test_post_logout_redirect_uris(self):
        _service = service_factory(
            'registration', 'oidc',
            service_context=ServiceContext(config={
                'post_logout_redirect_uris': ['https://example.com/logout']}),
            state_db=InMemoryStateDataBase())
        _args = {}
        AddPostLogoutRedirectUris()(_args, _service)
        assert _args['post_logout_redirect_uris'] == [
            'https://example.com/logout']


def test_id_token_from_response():
    _args = {'iss': 'https://example.com', 'sub': 'diana',
             'aud': ['client_id'], 'exp': 1999999999, 'iat': 1500000000}
    _resp = Message(code='code')
    assert id_token_from_response(_resp) is None

    _resp[verified_claim_name('id_token')] = IdToken(**_args)
    assert id_token_from_response(_resp)['sub'] == 'diana'

    _resp = Message()
    _resp[verified_claim_name('id_token')] = _args
    _idt = id_token_from_response(_resp)
    assert isinstance(_idt, IdToken)
    assert _idt['iss'] == 'https://example.com'


def test_gather_verify_arguments():
    _context = ServiceContext(config={
        'client_id': 'client_id',
        'issuer': 'https://example.com',
        'allow': {'missing_kid': True},
        'behaviour': {'verify_args': {'skew': 300}}
    })
    _context.registration_response = {
        'id_token_signed_response_alg': 'ES256'}
    _service = service_factory('accesstoken', 'oidc', service_context=_context,
                               state_db=InMemoryStateDataBase())

    _kwargs = gather_verify_arguments(_service, IDT2REG)
    assert _kwargs['client_id'] == 'client_id'
    assert _kwargs['iss'] == 'https://example.com'
    assert _kwargs['keyjar'] is _context.keyjar
    assert _kwargs['sigalg'] == 'ES256'
    assert 'encalg' not in _kwargs
    assert _kwargs['allow_missing_kid'] is True
    assert _kwargs['skew'] == 300
