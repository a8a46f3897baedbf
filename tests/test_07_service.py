import json
from urllib.parse import parse_qs
from urllib.parse import urlparse

import pytest
from cryptojwt.key_jar import build_keyjar
from oidcmsg.message import Message
from oidcmsg.oauth2 import AccessTokenRequest
from oidcmsg.oauth2 import AccessTokenResponse
from oidcmsg.oauth2 import AuthorizationRequest
from oidcmsg.oauth2 import AuthorizationResponse
from oidcmsg.oauth2 import ResponseMessage
from oidcmsg.oauth2 import is_error_message

from oidcpipeline.exception import ConfigurationError
from oidcpipeline.exception import DeserializationError
from oidcpipeline.exception import MissingRequiredAttribute
from oidcpipeline.exception import ProgrammingError
from oidcpipeline.exception import RequestArgumentProcessingError
from oidcpipeline.exception import ResponseError
from oidcpipeline.exception import ResponseVerificationError
from oidcpipeline.exception import UnexpectedResponseType
from oidcpipeline.exception import UnsupportedSerializationType
from oidcpipeline.oauth2 import DEFAULT_SERVICES
from oidcpipeline.oauth2.access_token import ACCESS_TOKEN
from oidcpipeline.oauth2.authorization import AUTHORIZATION
from oidcpipeline.oauth2.provider_info_discovery import PROVIDER_INFO_DISCOVERY
from oidcpipeline.oauth2.utils import AddClientId
from oidcpipeline.service import Service
from oidcpipeline.service import build_services
from oidcpipeline.service import service_factory
from oidcpipeline.service_config import ServiceConfig
from oidcpipeline.service_context import ServiceContext
from oidcpipeline.state_interface import InMemoryStateDataBase

ISS = 'https://example.com'
KEYSPEC = [{"type": "RSA", "use": ["sig"]}]

CLIENT_CONF = {
    'issuer': ISS,
    'client_id': 'client_id',
    'client_secret': 'a longer client secret',
    'redirect_uris': ['https://example.com/cli/authz_cb']
}

PROVIDER_INFO = {
    'issuer': ISS,
    'authorization_endpoint': 'https://example.com/authorize',
    'token_endpoint': 'https://example.com/token'
}


def _context():
    _ctx = ServiceContext(config=CLIENT_CONF)
    _ctx.provider_info = dict(PROVIDER_INFO)
    return _ctx


def add_marker(service, http_args, request, **kwargs):
    http_args.setdefault('headers', {})['X-Marker'] = str(len(
        http_args.get('body', '')))
    return http_args


class TestServiceConfig(object):
    def test_defaults(self):
        config = ServiceConfig()
        assert config.msg_type is Message
        assert config.http_method == 'GET'
        assert config.pre_construct == ()
        assert config.stateful is False

    def test_immutable(self):
        with pytest.raises(AttributeError):
            ACCESS_TOKEN.http_method = 'GET'
        with pytest.raises(AttributeError):
            del ACCESS_TOKEN.http_method
        with pytest.raises(TypeError):
            ACCESS_TOKEN.request_args['grant_type'] = 'implicit'

    def test_unknown_parameter(self):
        with pytest.raises(ConfigurationError):
            ServiceConfig(no_such_parameter=True)

    def test_unsupported_http_method(self):
        with pytest.raises(ConfigurationError):
            ServiceConfig(http_method='PATCH')

    def test_replace(self):
        config = ACCESS_TOKEN.replace(default_authn_method='client_secret_post')
        assert config.default_authn_method == 'client_secret_post'
        assert ACCESS_TOKEN.default_authn_method == 'client_secret_basic'
        assert config.pre_construct == ACCESS_TOKEN.pre_construct

    def test_from_conf_ignores_other_keys(self):
        config = AUTHORIZATION.from_conf({'http_method': 'POST',
                                          'my_own_thing': 1})
        assert config.http_method == 'POST'
        assert AUTHORIZATION.from_conf({'my_own_thing': 1}) is AUTHORIZATION
        assert AUTHORIZATION.from_conf(None) is AUTHORIZATION

    def test_dotted_paths(self):
        config = ServiceConfig(
            msg_type='oidcmsg.oauth2.AccessTokenRequest',
            pre_construct=['oidcpipeline.oauth2.utils.AddClientId'],
            get_endpoint='oidcpipeline.service_config.default_get_endpoint')
        assert config.msg_type is AccessTokenRequest
        assert isinstance(config.pre_construct[0], AddClientId)


class TestRequestParameters(object):
    @pytest.fixture(autouse=True)
    def create_services(self):
        self.context = _context()
        self.state_db = InMemoryStateDataBase()
        self.authorization = Service(self.context, self.state_db,
                                     config=AUTHORIZATION)
        self.token = Service(self.context, self.state_db, config=ACCESS_TOKEN)

    def test_get(self):
        _info = self.authorization.get_request_parameters(
            request_args={'state': 'ABCDE'})
        assert _info['method'] == 'GET'
        assert 'body' not in _info
        assert 'headers' not in _info

        _url = urlparse(_info['url'])
        assert '{}://{}{}'.format(_url.scheme, _url.netloc, _url.path) == \
               PROVIDER_INFO['authorization_endpoint']
        assert parse_qs(_url.query) == {
            'state': ['ABCDE'], 'response_type': ['code'],
            'redirect_uri': ['https://example.com/cli/authz_cb'],
            'client_id': ['client_id']}

        _req = self.authorization.get_item('auth_request', 'ABCDE')
        assert isinstance(_req, AuthorizationRequest)
        assert _req['redirect_uri'] == 'https://example.com/cli/authz_cb'

    def test_get_keeps_query_in_endpoint(self):
        _info = self.authorization.get_request_parameters(
            request_args={'state': 'ABCDE'},
            endpoint='https://example.com/authorize?foo=bar')
        _qs = parse_qs(urlparse(_info['url']).query)
        assert _qs['foo'] == ['bar']
        assert _qs['state'] == ['ABCDE']

    def test_post(self):
        self.authorization.create_state(ISS, 'ABCDE')
        self.authorization.store_item(
            AuthorizationRequest(redirect_uri='https://example.com/cli/authz_cb',
                                 response_type='code', state='ABCDE',
                                 client_id='client_id'),
            'auth_request', 'ABCDE')
        self.authorization.store_item(
            AuthorizationResponse(code='access_code', state='ABCDE'),
            'auth_response', 'ABCDE')

        _info = self.token.get_request_parameters(state='ABCDE')
        assert _info['method'] == 'POST'
        assert _info['url'] == PROVIDER_INFO['token_endpoint']
        assert _info['headers']['Content-Type'] == \
               'application/x-www-form-urlencoded'
        assert _info['headers']['Authorization'].startswith('Basic ')
        assert parse_qs(_info['body']) == {
            'grant_type': ['authorization_code'], 'code': ['access_code'],
            'redirect_uri': ['https://example.com/cli/authz_cb'],
            'client_id': ['client_id'], 'state': ['ABCDE']}

    def test_post_json(self):
        _service = Service(self.context, self.state_db, config=ServiceConfig(
            endpoint='https://example.com/register', http_method='POST',
            request_body_type='json'))
        _info = _service.get_request_parameters(
            request_args={'client_name': 'pipeline'})
        assert _info['headers'] == {'Content-Type': 'application/json'}
        assert json.loads(_info['body']) == {'client_name': 'pipeline'}

    def test_unsupported_request_body_type(self):
        _service = Service(self.context, self.state_db, config=ServiceConfig(
            endpoint='https://example.com/register', http_method='POST',
            request_body_type='xml'))
        with pytest.raises(UnsupportedSerializationType):
            _service.get_request_parameters(request_args={'foo': 'bar'})

    def test_authn_method_argument(self):
        self.token.create_state(ISS, 'ABCDE')
        _info = self.token.get_request_parameters(
            request_args={'code': 'access_code',
                          'redirect_uri': 'https://example.com/cb'},
            state='ABCDE', authn_method='client_secret_post')
        assert 'Authorization' not in _info['headers']
        assert parse_qs(_info['body'])['client_secret'] == [
            'a longer client secret']

    def test_no_endpoint(self):
        self.context.provider_info = {}
        with pytest.raises(MissingRequiredAttribute):
            self.authorization.get_request_parameters(
                request_args={'state': 'ABCDE'})

    def test_configured_endpoint_wins(self):
        _service = Service(self.context, self.state_db, config=AUTHORIZATION,
                           conf={'endpoint': 'https://other.example.com/az'})
        assert _service.get_endpoint() == 'https://other.example.com/az'
        assert _service.get_conf_attr('endpoint') == \
               'https://other.example.com/az'
        assert _service.get_conf_attr('foo', 'bar') == 'bar'

    def test_processor_errors_are_aggregated(self):
        with pytest.raises(RequestArgumentProcessingError) as err:
            self.authorization.get_request_parameters(
                request_args={'response_type': ['a', 1]})
        # Both processors that use response_type complain
        assert err.value.parameters == ['response_type', 'response_type']

    def test_no_redirect_uri(self):
        self.context.redirect_uris = []
        with pytest.raises(RequestArgumentProcessingError) as err:
            self.authorization.get_request_parameters(
                request_args={'state': 'ABCDE'})
        assert err.value.parameters == ['redirect_uri']

    def test_finalize_runs_last(self):
        _service = Service(self.context, self.state_db, config=ServiceConfig(
            endpoint='https://example.com/register', http_method='POST',
            finalize_request_parameters=add_marker))
        _info = _service.get_request_parameters(request_args={'foo': 'bar'})
        assert _info['headers']['X-Marker'] == str(len('foo=bar'))

    def test_delete_has_query(self):
        _service = Service(self.context, self.state_db, config=ServiceConfig(
            endpoint='https://example.com/resource', http_method='DELETE'))
        _info = _service.get_request_parameters(request_args={'id': '12'})
        assert _info['method'] == 'DELETE'
        assert _info['url'] == 'https://example.com/resource?id=12'
        assert 'body' not in _info


class TestParseResponse(object):
    @pytest.fixture(autouse=True)
    def create_services(self):
        self.context = _context()
        self.state_db = InMemoryStateDataBase()
        self.authorization = Service(self.context, self.state_db,
                                     config=AUTHORIZATION)
        self.token = Service(self.context, self.state_db, config=ACCESS_TOKEN)
        self.provider_info = Service(self.context, self.state_db,
                                     config=PROVIDER_INFO_DISCOVERY)

    def test_json(self):
        _resp = self.token.parse_response(json.dumps(
            {'access_token': 'token', 'token_type': 'Bearer'}))
        assert isinstance(_resp, AccessTokenResponse)
        assert _resp['access_token'] == 'token'

    def test_urlencoded_url(self):
        _resp = self.authorization.parse_response(
            'https://example.com/cli/authz_cb?code=access_code&state=ABCDE')
        assert isinstance(_resp, AuthorizationResponse)
        assert _resp['code'] == 'access_code'

    def test_urlencoded_fragment(self):
        _resp = self.authorization.parse_response(
            'https://example.com/cli/authz_cb#code=access_code&state=ABCDE')
        assert _resp['state'] == 'ABCDE'

    def test_scope_from_request(self):
        self.authorization.create_state(ISS, 'ABCDE')
        self.authorization.store_item(
            AuthorizationRequest(response_type='code', client_id='client_id',
                                 scope=['read', 'write'], state='ABCDE'),
            'auth_request', 'ABCDE')
        _resp = self.authorization.parse_response('code=foo&state=ABCDE',
                                                  state='ABCDE')
        assert _resp['scope'] == ['read', 'write']

    def test_signed_jwt_tagged_as_json(self):
        _iss_keys = build_keyjar(KEYSPEC)
        self.context.keyjar.import_jwks(_iss_keys.export_jwks(False, ''), ISS)
        _jwt = AccessTokenResponse(
            access_token='token', token_type='Bearer', iss=ISS).to_jwt(
            _iss_keys.get_signing_key('RSA'), 'RS256')

        _resp = self.token.parse_response(_jwt, sformat='json')
        assert isinstance(_resp, AccessTokenResponse)
        assert _resp['access_token'] == 'token'

    def test_not_deserializable(self):
        with pytest.raises(DeserializationError):
            self.token.parse_response('this is not json')

    def test_unsupported_format(self):
        with pytest.raises(UnsupportedSerializationType):
            self.token.parse_response('{}', sformat='xml')

    def test_error_response(self):
        _resp = self.token.parse_response(json.dumps(
            {'error': 'invalid_grant', 'error_description': 'expired'}))
        assert isinstance(_resp, ResponseMessage)
        assert is_error_message(_resp)
        assert _resp['error'] == 'invalid_grant'

    def test_missing_required_claims(self):
        with pytest.raises(ResponseVerificationError) as err:
            self.token.parse_response(json.dumps({'expires_in': 300}))
        assert set(err.value.claims) == {'access_token', 'token_type'}

    def _provider_info(self, **kwargs):
        _info = {
            'issuer': ISS,
            'authorization_endpoint': 'https://example.com/authorize',
            'token_endpoint': 'https://example.com/token',
            'jwks_uri': 'https://example.com/jwks.json',
            'response_types_supported': ['code'],
            'subject_types_supported': ['public'],
            'id_token_signing_alg_values_supported': ['RS256']
        }
        _info.update(kwargs)
        return json.dumps(_info)

    def test_verification_failure_names_claim(self):
        _service = service_factory('provider_info', 'oidc',
                                   service_context=self.context,
                                   state_db=self.state_db)
        with pytest.raises(ResponseVerificationError) as err:
            _service.parse_response(
                self._provider_info(issuer='http://example.com'))
        assert err.value.claims == ['issuer']
        assert 'HTTPS' in str(err.value)
        assert err.value.cause is not None

    def test_value_failure_names_claim(self):
        _service = service_factory('provider_info', 'oidc',
                                   service_context=self.context,
                                   state_db=self.state_db)
        with pytest.raises(ResponseVerificationError) as err:
            _service.parse_response(self._provider_info(
                id_token_signing_alg_values_supported=['ES256']))
        assert err.value.claims == ['id_token_signing_alg_values_supported']
        assert isinstance(err.value.cause, ValueError)

    def test_consume_error_response_leaves_state(self):
        self.token.create_state(ISS, 'ABCDE')
        _resp = self.token.consume_response(
            json.dumps({'error': 'invalid_grant'}), state='ABCDE')
        assert is_error_message(_resp)
        assert self.token.get_state('ABCDE').to_dict() == {'iss': ISS}

    def test_consume_response(self):
        self.token.create_state(ISS, 'ABCDE')
        self.token.consume_response(
            json.dumps({'access_token': 'token', 'token_type': 'Bearer',
                        'expires_in': 300}), state='ABCDE')
        _item = self.token.get_item('token_response', 'ABCDE')
        assert _item['access_token'] == 'token'
        assert '__expires_at' in _item

    def test_consume_response_state_from_response(self):
        self.authorization.create_state(ISS, 'ABCDE')
        self.authorization.consume_response('code=foo&state=ABCDE')
        assert self.authorization.get_item('auth_response',
                                           'ABCDE')['code'] == 'foo'


class TestUpdateServiceContext(object):
    @pytest.fixture(autouse=True)
    def create_services(self):
        self.context = _context()
        self.state_db = InMemoryStateDataBase()
        self.token = Service(self.context, self.state_db, config=ACCESS_TOKEN)
        self.provider_info = Service(self.context, self.state_db,
                                     config=PROVIDER_INFO_DISCOVERY)

    def test_key_to_stateless_service(self):
        with pytest.raises(ProgrammingError):
            self.provider_info.update_service_context(
                self.provider_info.response_cls(issuer=ISS), key='ABCDE')

    def test_no_key_to_stateful_service(self):
        with pytest.raises(MissingRequiredAttribute):
            self.token.update_service_context(
                AccessTokenResponse(access_token='token', token_type='Bearer'))

    def test_unexpected_response_type(self):
        self.token.create_state(ISS, 'ABCDE')
        with pytest.raises(UnexpectedResponseType):
            self.token.update_service_context(Message(access_token='token'),
                                              key='ABCDE')

    def test_error_response(self):
        with pytest.raises(ResponseError):
            self.token.update_service_context(
                ResponseMessage(error='invalid_request'), key='ABCDE')

    def test_unknown_state(self):
        with pytest.raises(KeyError):
            self.token.update_service_context(
                AccessTokenResponse(access_token='token', token_type='Bearer'),
                key='unknown')


class TestBuildServices(object):
    def test_build_services(self):
        _services = build_services(DEFAULT_SERVICES, _context(),
                                   InMemoryStateDataBase())
        assert set(_services.keys()) == {'provider_info', 'authorization',
                                         'accesstoken', 'refresh_token'}
        assert _services['accesstoken'].config is ACCESS_TOKEN
        assert _services['authorization'].service_context is \
               _services['accesstoken'].service_context
        assert _services['authorization'].state_db is \
               _services['accesstoken'].state_db

    def test_build_with_conf(self):
        _services = build_services(
            {'authz': {'config': AUTHORIZATION,
                       'conf': {'request_args': {'scope': ['read']}}}},
            _context(), InMemoryStateDataBase())
        assert _services['authorization'].config.request_args == {
            'scope': ['read']}

    def test_service_factory(self):
        _srv = service_factory('accesstoken', 'oauth2',
                               service_context=_context(),
                               state_db=InMemoryStateDataBase())
        assert _srv.service_name == 'accesstoken'
        assert _srv.config is ACCESS_TOKEN

    def test_service_factory_by_service_name(self):
        _srv = service_factory('refresh_token', service_context=_context(),
                               state_db=InMemoryStateDataBase())
        assert _srv.service_name == 'refresh_token'

    def test_service_factory_unknown(self):
        with pytest.raises(ConfigurationError):
            service_factory('end_session', 'oauth2')
