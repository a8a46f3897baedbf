import logging
import os

from cryptojwt.jws.utils import alg2keytype
from oidcmsg.message import Message
from oidcmsg.message import OPTIONAL_LIST_OF_SP_SEP_STRINGS
from oidcmsg.message import OPTIONAL_LIST_OF_STRINGS
from oidcmsg.message import SINGLE_OPTIONAL_STRING
from oidcmsg.oidc import IdToken
from oidcmsg.oidc import verified_claim_name

from oidcpipeline import DEF_SIGN_ALG
from oidcpipeline import random_token
from oidcpipeline import rndstr
from oidcpipeline.exception import ErrorDetails
from oidcpipeline.exception import MISSING_REQUIRED_VALUE
from oidcpipeline.exception import ParameterError
from oidcpipeline.exception import StateNotFound
from oidcpipeline.exception import VALUE_NOT_ALLOWED
from oidcpipeline.oauth2.utils import ExtendRequestArguments
from oidcpipeline.oauth2.utils import TOKEN_RESPONSES
from oidcpipeline.oauth2.utils import get_state_parameter
from oidcpipeline.oauth2.utils import store_response
from oidcpipeline.processor import RequestArgumentProcessor

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)

rt2gt = {
    'code': ['authorization_code'],
    'token': ['implicit'],
    'id_token': ['implicit'],
    'id_token token': ['implicit'],
    'code id_token': ['authorization_code', 'implicit'],
    'code token': ['authorization_code', 'implicit'],
    'code id_token token': ['authorization_code', 'implicit']
}


def response_types_to_grant_types(response_types):
    """
    :param response_types: list of response types, each one a space
        separated string
    :return: Sorted list of grant types
    :raises ValueError: For an unknown response type combination
    """
    _res = set()

    for response_type in response_types:
        _rt = response_type.split()
        _rt.sort()
        try:
            _gt = rt2gt[" ".join(_rt)]
        except KeyError:
            raise ValueError(
                'No such response type combination: {}'.format(response_type))
        else:
            _res.update(set(_gt))

    return sorted(_res)


def construct_request_uri(local_dir, base_path, **kwargs):
    """
    Constructs a special redirect_uri to be used when communicating with
    one OP. Each OP should get their own redirect_uris.

    :param local_dir: Local directory in which to place the file
    :param base_path: Base URL to start with
    :param kwargs:
    :return: 2-tuple with (filename, url)
    """
    _filedir = local_dir
    if not os.path.isdir(_filedir):
        os.makedirs(_filedir)
    _webpath = base_path
    _name = rndstr(10) + ".jwt"
    filename = os.path.join(_filedir, _name)
    while os.path.exists(filename):
        _name = rndstr(10) + ".jwt"
        filename = os.path.join(_filedir, _name)
    if _webpath.endswith("/"):
        _webname = "%s%s" % (_webpath, _name)
    else:
        _webname = "%s/%s" % (_webpath, _name)
    return filename, _webname


def _has_token(values, token):
    for val in values:
        if token in val.split():
            return True
    return False


class AddScope(RequestArgumentProcessor):
    """
    OpenID Connect requests must carry the 'openid' scope value.
    """
    c_param = {'scope': OPTIONAL_LIST_OF_SP_SEP_STRINGS}
    writes = ('scope',)

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        _scope = request_args.get('scope')
        if not _scope:
            request_args['scope'] = ['openid']
        elif not _has_token(_scope, 'openid'):
            request_args['scope'] = _scope + ['openid']


class AddNonce(RequestArgumentProcessor):
    """
    An ID Token returned directly from the authorization endpoint must be
    bound to the request by a nonce.
    """
    c_param = {
        'response_type': OPTIONAL_LIST_OF_SP_SEP_STRINGS,
        'nonce': SINGLE_OPTIONAL_STRING
    }
    writes = ('nonce',)

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        if request_args.get('nonce'):
            return

        _rt = request_args.get('response_type')
        if _rt and _has_token(_rt, 'id_token'):
            request_args['nonce'] = random_token(32)


class StoreNonce(RequestArgumentProcessor):
    """Binds the nonce of a constructed request to its state."""
    c_param = {
        'nonce': SINGLE_OPTIONAL_STRING,
        'state': SINGLE_OPTIONAL_STRING
    }

    def process_verified_arguments(self, request, service, errors, **kwargs):
        if not request.get('nonce'):
            return

        if not request.get('state'):
            errors.append(ErrorDetails('state', MISSING_REQUIRED_VALUE,
                                       'A nonce needs a state to bind to'))
            return

        service.store_nonce2state(request['nonce'], request['state'])


class AddOidcResponseTypes(RequestArgumentProcessor):
    """
    Sets grant_types so that they match the response_types of a client
    registration request.
    """
    c_param = {'response_types': OPTIONAL_LIST_OF_STRINGS}
    writes = ('grant_types',)

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        _response_types = request_args.get('response_types')
        if not _response_types:
            return

        _grant_types = set()
        for response_type in _response_types:
            try:
                _grant_types.update(
                    response_types_to_grant_types([response_type]))
            except ValueError as err:
                errors.append(ErrorDetails('response_types', VALUE_NOT_ALLOWED,
                                           str(err), cause=err))

        if not errors:
            request_args['grant_types'] = sorted(_grant_types)


class AddRedirectUris(RequestArgumentProcessor):
    c_param = {'redirect_uris': OPTIONAL_LIST_OF_STRINGS}
    writes = ('redirect_uris',)

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        if request_args.get('redirect_uris'):
            return

        _context = service.service_context
        # The callback map has callback type 'code', 'implicit',
        # 'form_post' as keys.
        if _context.callback:
            # Filter out local additions.
            _uris = [v for k, v in _context.callback.items()
                     if not k.startswith('__')]
            request_args['redirect_uris'] = _uris
        elif _context.redirect_uris:
            request_args['redirect_uris'] = _context.redirect_uris


class AddRequestUri(RequestArgumentProcessor):
    writes = ('request_uris',)

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        _context = service.service_context
        if _context.requests_dir:
            if _context.provider_info.get(
                    'require_request_uri_registration') is True:
                request_args['request_uris'] = _context.generate_request_uris(
                    _context.requests_dir)


class AddPostLogoutRedirectUris(RequestArgumentProcessor):
    c_param = {'post_logout_redirect_uris': OPTIONAL_LIST_OF_STRINGS}
    writes = ('post_logout_redirect_uris',)

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        if "post_logout_redirect_uris" not in request_args:
            _uris = service.service_context.post_logout_redirect_uris
            if _uris:
                request_args["post_logout_redirect_uris"] = _uris


class AddJwksUriOrJwks(RequestArgumentProcessor):
    """Only one of jwks_uri and jwks is allowed in a registration request."""
    writes = ('jwks_uri', 'jwks')

    @property
    def reads(self):
        return {'jwks_uri', 'jwks'}

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        if 'jwks_uri' in request_args:
            if 'jwks' in request_args:
                del request_args['jwks']
            return
        elif 'jwks' in request_args:
            return

        _context = service.service_context
        for attr in ['jwks_uri', 'jwks']:
            _val = getattr(_context, attr, None)
            if not _val:
                _val = _context.config.get(attr)
            if _val:
                request_args[attr] = _val
                break


class AddClientBehaviourPreference(RequestArgumentProcessor):
    """
    Fills in the registration request from the negotiated behaviour and,
    where there is none, from the client preferences.
    """

    @property
    def reads(self):
        return set()

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        _context = service.service_context
        for prop in service.msg_type.c_param.keys():
            if prop in request_args:
                continue

            try:
                request_args[prop] = _context.behaviour[prop]
            except KeyError:
                try:
                    request_args[prop] = _context.client_preferences[prop]
                except KeyError:
                    pass


class AddRequestObject(RequestArgumentProcessor):
    """
    Moves the authorization request into a signed request object. Depending
    on request_method it is either sent by value in the 'request' parameter
    or written to a file and sent by reference in 'request_uri'.
    """
    c_kwargs = {
        'request_method': SINGLE_OPTIONAL_STRING,
        'request_object_signing_alg': SINGLE_OPTIONAL_STRING,
        'algorithm': SINGLE_OPTIONAL_STRING,
        'sig_kid': SINGLE_OPTIONAL_STRING,
        'local_dir': SINGLE_OPTIONAL_STRING,
        'base_path': SINGLE_OPTIONAL_STRING
    }
    writes = ('request', 'request_uri')

    @staticmethod
    def signing_alg(service, **kwargs):
        for arg in ["request_object_signing_alg", "algorithm"]:
            if kwargs.get(arg):
                return kwargs[arg]

        return service.service_context.get_sign_alg(
            'request_object') or DEF_SIGN_ALG['request_object']

    def signed_request(self, request, service, **kwargs):
        _context = service.service_context
        alg = self.signing_alg(service, **kwargs)

        if alg == 'none':
            _keys = []
        elif kwargs.get('sig_kid'):
            _keys = [_context.keyjar.get_key_by_kid(kwargs['sig_kid'])]
        else:
            _keys = _context.keyjar.get_signing_key(alg2keytype(alg), alg=alg)

        if alg != 'none' and not [k for k in _keys if k]:
            raise ValueError('No signing key for {}'.format(alg))

        _args = request.to_dict()
        _args['iss'] = _context.client_id
        _args['aud'] = _context.provider_info.get('issuer', _context.issuer)
        return Message(**_args).to_jwt(key=_keys, algorithm=alg)

    def store_request_on_file(self, jwt, service, **kwargs):
        """
        Stores the request parameter in a file.

        :return: The URL the OP should use to access the file
        """
        _context = service.service_context
        try:
            _webname = _context.registration_response['request_uris'][0]
            filename = _context.filename_from_webname(_webname)
        except (KeyError, IndexError):
            _dir = kwargs.get('local_dir') or _context.requests_dir or 'requests'
            _base = kwargs.get('base_path') or '{}/{}'.format(
                _context.base_url, os.path.basename(_dir.rstrip('/')))
            filename, _webname = construct_request_uri(_dir, _base)

        with open(filename, mode="w") as fid:
            fid.write(jwt)
        return _webname

    def process_verified_arguments(self, request, service, errors, **kwargs):
        _method = kwargs.get('request_method')
        if not _method:
            return

        if _method in ('request', 'value'):
            _param = 'request'
        elif _method in ('request_uri', 'reference'):
            _param = 'request_uri'
        else:
            errors.append(ErrorDetails(
                'request_method', VALUE_NOT_ALLOWED,
                'Unknown request method "{}"'.format(_method)))
            return

        try:
            _jwt = self.signed_request(request, service, **kwargs)
        except ValueError as err:
            errors.append(ErrorDetails('request', MISSING_REQUIRED_VALUE,
                                       str(err), cause=err))
            return

        if _param == 'request':
            request['request'] = _jwt
        else:
            request['request_uri'] = self.store_request_on_file(
                _jwt, service, **kwargs)


class ExtendUserInfoRequestArguments(ExtendRequestArguments):
    """
    Finds the latest access token for the state. The state is kept out of
    the request but handed on to the post_construct processors.
    """
    item_types = ['auth_response'] + TOKEN_RESPONSES

    def parameters(self, service):
        return ['access_token']

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        if 'access_token' in request_args:
            _state = get_state_parameter(request_args, kwargs)
            request_args.pop('state', None)
            if _state:
                return {'state': _state}
            return

        _post_args = ExtendRequestArguments.process_verified_arguments(
            self, request_args, service, errors, **kwargs)
        request_args.pop('state', None)
        return _post_args


def gather_verify_arguments(service, reg2verify):
    """
    Verify arguments with the algorithms the client registered for.

    :param reg2verify: Map from verify argument to registration parameter
    :return: dictionary with arguments to the verify call
    """
    _ctx = service.service_context
    kwargs = {
        'client_id': _ctx.client_id, 'iss': _ctx.issuer,
        'keyjar': _ctx.keyjar, 'verify': True,
        'skew': _ctx.clock_skew
    }

    for attr, param in reg2verify.items():
        try:
            kwargs[attr] = _ctx.registration_response[param]
        except KeyError:
            pass

    try:
        kwargs['allow_missing_kid'] = _ctx.allow['missing_kid']
    except KeyError:
        pass

    _verify_args = _ctx.behaviour.get("verify_args")
    if _verify_args:
        kwargs.update(_verify_args)

    return kwargs


def id_token_from_response(response):
    """
    :return: The verified ID Token as a :py:class:`oidcmsg.oidc.IdToken`
        instance or None if the response did not carry one.
    """
    try:
        _idt = response[verified_claim_name('id_token')]
    except KeyError:
        return None

    if isinstance(_idt, IdToken):
        return _idt
    if isinstance(_idt, Message):
        return IdToken(**_idt.to_dict())
    return IdToken(**_idt)


def verify_nonce(service, id_token, key):
    """
    The nonce in an ID Token must lead back to the state the response is
    stored under.

    :raises ParameterError: If the nonce is missing or bound to another state
    :raises NonceNotFound: If the nonce is unknown
    """
    try:
        _nonce = id_token['nonce']
    except KeyError:
        try:
            _request = service.get_item('auth_request', key)
        except StateNotFound:
            return
        if 'nonce' in _request:
            raise ParameterError('Missing nonce value')
        return

    if service.get_state_by_nonce(_nonce) != key:
        raise ParameterError('Someone has messed with "nonce"')


def store_verified_id_token(service, response, key):
    _idt = id_token_from_response(response)
    if _idt is None:
        return

    verify_nonce(service, _idt, key)
    store_response(service, _idt, 'verified_id_token', key)
