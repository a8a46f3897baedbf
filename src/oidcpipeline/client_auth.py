"""
Client authentication. A method adds what the server needs to authenticate
the client, to the request message or to the HTTP headers. It is applied to
the constructed request just before it is serialized.
"""
import base64
import logging
from urllib.parse import quote_plus

from cryptojwt.jws.utils import alg2keytype
from oidcmsg.message import VREQUIRED
from oidcmsg.oauth2 import AccessTokenRequest
from oidcmsg.oidc import AuthnToken
from oidcmsg.time_util import utc_time_sans_frac

from oidcpipeline import DEF_SIGN_ALG
from oidcpipeline import JWT_BEARER
from oidcpipeline import rndstr
from oidcpipeline.exception import OidcServiceError

logger = logging.getLogger(__name__)

__author__ = 'roland hedberg'


class AuthnFailure(OidcServiceError):
    pass


class NoMatchingKey(OidcServiceError):
    pass


def assertion_jwt(client_id, keys, audience, algorithm, lifetime=600):
    """
    Create a signed Json Web Token containing some information.

    :param client_id: The Client ID
    :param keys: Signing keys
    :param audience: Who is the receivers for this assertion
    :param algorithm: Signing algorithm
    :param lifetime: The lifetime of the signed Json Web Token
    :return: A Signed Json Web Token
    """
    _now = utc_time_sans_frac()

    at = AuthnToken(iss=client_id, sub=client_id,
                    aud=audience, jti=rndstr(32),
                    exp=_now + lifetime, iat=_now)
    logger.debug('AuthnToken: {}'.format(at.to_dict()))
    return at.to_jwt(key=keys, algorithm=algorithm)


def remove_client_id(request):
    """Remove client_id unless the request definition requires it."""
    try:
        _req = request.c_param["client_id"][VREQUIRED]
    except KeyError:
        _req = False

    if not _req:
        try:
            del request["client_id"]
        except KeyError:
            pass


class ClientAuthnMethod(object):
    """
    Basic Client Authentication Method class.
    Only has one public method: *construct*
    """

    def construct(self, request, service=None, http_args=None, **kwargs):
        """ Add authentication information to a request
        :return: HTTP arguments
        """
        raise NotImplementedError()


class ClientSecretBasic(ClientAuthnMethod):
    """
    Clients that have received a client_secret value from the Authorization
    Server, may authenticate with the Authorization Server in accordance with
    Section 3.2.1 of OAuth 2.0 [RFC6749] using HTTP Basic authentication scheme.
    """

    def construct(self, request, service=None, http_args=None, **kwargs):
        if http_args is None:
            http_args = {}

        if "headers" not in http_args:
            http_args["headers"] = {}

        _context = service.service_context
        try:
            passwd = kwargs["password"]
        except KeyError:
            try:
                passwd = request["client_secret"]
            except KeyError:
                passwd = _context.client_secret

        user = kwargs.get("user", _context.client_id)

        if not passwd:
            raise AuthnFailure("Missing client secret")

        credentials = "{}:{}".format(quote_plus(user), quote_plus(passwd))
        authz = base64.b64encode(credentials.encode("utf-8")).decode("utf-8")
        http_args["headers"]["Authorization"] = "Basic {}".format(authz)

        try:
            del request["client_secret"]
        except KeyError:
            pass

        # An access token request using an authorization code carries
        # the client_id
        if isinstance(request, AccessTokenRequest) and request.get(
                'grant_type') == 'authorization_code':
            if 'client_id' not in request:
                request['client_id'] = _context.client_id
        else:
            remove_client_id(request)

        return http_args


class ClientSecretPost(ClientAuthnMethod):
    """
    Clients that have received a client_secret value from the Authorization
    Server, authenticate with the Authorization Server in accordance with
    Section 3.2.1 of OAuth 2.0 [RFC6749] by including the Client Credentials in
    the request body.
    """

    def construct(self, request, service=None, http_args=None, **kwargs):
        _context = service.service_context
        if "client_secret" not in request:
            try:
                request["client_secret"] = kwargs["client_secret"]
            except KeyError:
                if _context.client_secret:
                    request["client_secret"] = _context.client_secret
                else:
                    raise AuthnFailure("Missing client secret")

        request["client_id"] = _context.client_id
        return http_args


def find_token(request, token_type, service, **kwargs):
    """
    The access token can be in a number of places.
    There are priority rules as to which one to use, abide by those:

    1 If it's among the request parameters use that
    2 If among the extra keyword arguments
    3 Acquired by a previous run service.

    :param request: The request
    :param token_type: 'access_token' or 'refresh_token'
    :param service: The service instance
    :param kwargs: Extra keyword arguments
    :return: A token or None
    """
    if request is not None:
        try:
            _token = request[token_type]
        except KeyError:
            pass
        else:
            del request[token_type]
            return _token

    try:
        return kwargs[token_type]
    except KeyError:
        pass

    if not kwargs.get('state'):
        return None

    # The latest acquired token is in the last item
    _arg = service.multiple_extend_request_args(
        {}, kwargs['state'], [token_type],
        ['auth_response', 'token_response', 'refresh_token_response'])
    return _arg.get(token_type)


class BearerHeader(ClientAuthnMethod):
    def construct(self, request=None, service=None, http_args=None,
                  **kwargs):
        """
        Constructing the Authorization header. The value of
        the Authorization header is "Bearer <access_token>".
        """
        if service.service_name == 'refresh_token':
            _acc_token = find_token(request, 'refresh_token', service, **kwargs)
        else:
            _acc_token = find_token(request, 'access_token', service, **kwargs)

        if not _acc_token:
            raise AuthnFailure('No access or refresh token available')

        if http_args is None:
            http_args = {}
        http_args.setdefault('headers', {})
        http_args["headers"]["Authorization"] = "Bearer {}".format(_acc_token)
        return http_args


class BearerBody(ClientAuthnMethod):
    def construct(self, request, service=None, http_args=None, **kwargs):
        """
        Will add a token to the request if not present
        """
        _acc_token = ''
        for _token_type in ['access_token', 'refresh_token']:
            _acc_token = find_token(request, _token_type, service, **kwargs)
            if _acc_token:
                break

        if not _acc_token:
            raise AuthnFailure('No access or refresh token available')

        request["access_token"] = _acc_token
        return http_args


class JWSAuthnMethod(ClientAuthnMethod):
    """
    Base class for client authentication methods that uses signed JSON
    Web Tokens.
    """
    context = ''

    def choose_algorithm(self, **kwargs):
        try:
            algorithm = kwargs["algorithm"]
        except KeyError:
            algorithm = DEF_SIGN_ALG[self.context]
        if not algorithm:
            raise AuthnFailure("Missing algorithm specification")
        return algorithm

    def get_signing_key(self, algorithm, service_context):
        return service_context.keyjar.get_signing_key(
            alg2keytype(algorithm), alg=algorithm)

    def get_key_by_kid(self, kid, algorithm, service_context):
        _key = service_context.keyjar.get_key_by_kid(kid)
        if not _key:
            raise NoMatchingKey("No key with kid:%s" % kid)
        if _key.kty != alg2keytype(algorithm):
            raise NoMatchingKey("Wrong key type")
        return _key

    def construct(self, request, service=None, http_args=None, **kwargs):
        """
        Constructs a client assertion and signs it with a key.
        The request is modified as a side effect.
        """
        if 'client_assertion' in kwargs:
            request["client_assertion"] = kwargs['client_assertion']
            request["client_assertion_type"] = kwargs.get(
                'client_assertion_type', JWT_BEARER)
        elif 'client_assertion' in request:
            if 'client_assertion_type' not in request:
                request["client_assertion_type"] = JWT_BEARER
        else:
            algorithm = None
            _context = service.service_context
            # audience for the signed JWT depends on which endpoint
            # we're talking to.
            if kwargs.get('authn_endpoint') == 'token_endpoint':
                algorithm = _context.behaviour.get(
                    'token_endpoint_auth_signing_alg')
                try:
                    audience = _context.provider_info['token_endpoint']
                except KeyError:
                    audience = service.get_endpoint()
            else:
                audience = _context.provider_info.get('issuer',
                                                      _context.issuer)

            if not algorithm:
                algorithm = self.choose_algorithm(**kwargs)

            if 'kid' in kwargs:
                signing_key = [self.get_key_by_kid(kwargs["kid"], algorithm,
                                                   _context)]
            else:
                signing_key = self.get_signing_key(algorithm, _context)

            if not signing_key:
                logger.error('No signing key for {}'.format(algorithm))
                raise NoMatchingKey('No signing key for {}'.format(algorithm))

            _args = {}
            if 'lifetime' in kwargs:
                _args['lifetime'] = kwargs['lifetime']

            request["client_assertion"] = assertion_jwt(
                _context.client_id, signing_key, audience, algorithm, **_args)
            request["client_assertion_type"] = JWT_BEARER

        try:
            del request["client_secret"]
        except KeyError:
            pass

        remove_client_id(request)
        return http_args


class ClientSecretJWT(JWSAuthnMethod):
    """
    Clients that have received a client_secret value from the Authorization
    Server can create a signed JWT using an HMAC SHA algorithm, such as
    HMAC SHA-256.
    """
    context = "client_secret_jwt"


class PrivateKeyJWT(JWSAuthnMethod):
    """
    Clients that have registered a public key can sign a JWT using that key.
    """
    context = "private_key_jwt"

    def get_signing_key(self, algorithm, service_context=None):
        return service_context.keyjar.get_signing_key(
            alg2keytype(algorithm), "", alg=algorithm)


# Map from client authentication identifiers to corresponding class
CLIENT_AUTHN_METHOD = {
    "client_secret_basic": ClientSecretBasic,
    "client_secret_post": ClientSecretPost,
    "bearer_header": BearerHeader,
    "bearer_body": BearerBody,
    "client_secret_jwt": ClientSecretJWT,
    "private_key_jwt": PrivateKeyJWT,
}


def factory(auth_method):
    try:
        return CLIENT_AUTHN_METHOD[auth_method]()
    except KeyError:
        logger.error(
            'Unknown client authentication method: {}'.format(auth_method))
        raise ValueError(auth_method)
