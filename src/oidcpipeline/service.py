import logging
import re
from urllib.parse import urlparse

from oidcmsg.exception import IssuerMismatch
from oidcmsg.exception import NotForMe
from oidcmsg.exception import SchemeError
from oidcmsg.message import VREQUIRED
from oidcmsg.oauth2 import is_error_message
from oidcmsg.oidc import AtHashError
from oidcmsg.oidc import CHashError
from oidcmsg.oidc import EXPError
from oidcmsg.oidc import IATError

from oidcpipeline.client_auth import factory as ca_factory
from oidcpipeline.exception import ConfigurationError
from oidcpipeline.exception import DeserializationError
from oidcpipeline.exception import MissingRequiredAttribute
from oidcpipeline.exception import ProgrammingError
from oidcpipeline.exception import ResponseError
from oidcpipeline.exception import ResponseVerificationError
from oidcpipeline.exception import UnexpectedResponseType
from oidcpipeline.exception import UnsupportedSerializationType
from oidcpipeline.processor import process_request_arguments
from oidcpipeline.service_config import ServiceConfig
from oidcpipeline.state_interface import StateInterface
from oidcpipeline.util import RESPONSE_FORMATS
from oidcpipeline.util import content_type_for
from oidcpipeline.util import get_http_body
from oidcpipeline.util import get_http_url
from oidcpipeline.util import importer
from oidcpipeline.util import load_yaml_config
from oidcpipeline.util import resolve

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)

REQUEST_INFO = 'Doing request with: URL:{}, method:{}, data:{}, https_args:{}'

# Verification errors that always concern the same claim
ERROR2CLAIM = [
    (EXPError, 'exp'),
    (IATError, 'iat'),
    (AtHashError, 'at_hash'),
    (CHashError, 'c_hash'),
    (IssuerMismatch, 'iss'),
    (NotForMe, 'aud'),
    (SchemeError, 'issuer'),
]


def violated_claims(resp, err):
    """
    Find the names of the claims a verification error concerns.

    :param resp: The message that failed verification
    :param err: The exception raised by the message class
    :return: List of claim names, may be empty
    """
    for cls, claim in ERROR2CLAIM:
        if isinstance(err, cls):
            return [claim]

    _known = set(resp.keys()) | set(resp.c_param.keys())
    _claims = [a for a in err.args if isinstance(a, str) and a in _known]
    if _claims:
        return _claims

    for word in re.findall(r'[A-Za-z_][A-Za-z0-9_]*', str(err)):
        word = word.lower()
        if word in _known and word not in _claims:
            _claims.append(word)
    return _claims


class Service(StateInterface):
    """
    Runs one protocol operation. What the operation sends, expects and does
    with the response is given by a
    :py:class:`oidcpipeline.service_config.ServiceConfig`.

    The instance keeps no per-request data, it can be used for any number of
    requests and responses.
    """

    def __init__(self, service_context, state_db, config=None, conf=None,
                 client_authn_factory=None, **kwargs):
        StateInterface.__init__(self, state_db)

        if client_authn_factory is None:
            self.client_authn_factory = ca_factory
        else:
            self.client_authn_factory = client_authn_factory

        self.service_context = service_context
        self.conf = conf or {}

        if config is None:
            config = ServiceConfig()
        self.config = config.from_conf(self.conf)

    @property
    def service_name(self):
        return self.config.service_name

    @property
    def msg_type(self):
        return self.config.msg_type

    @property
    def response_cls(self):
        return self.config.response_cls

    @property
    def endpoint_name(self):
        return self.config.endpoint_name

    def get_conf_attr(self, attr, default=None):
        """
        Get the value of a attribute in the configuration

        :param attr: The attribute
        :param default: If the attribute doesn't appear in the configuration
            return this value
        :return: The value of attribute in the configuration or the default
            value
        """
        return self.conf.get(attr, default)

    # ------------------ request construction -----------------------

    def method_args(self, context, **kwargs):
        """
        Collect the set of arguments that should be used by a set of
        processors.

        :param context: 'pre_construct' or 'post_construct'
        :param kwargs: A set of keyword arguments that are added at run-time.
        :return: A set of keyword arguments
        """
        _args = dict(getattr(self.config, '{}_args'.format(context)))
        _args.update(kwargs)
        return _args

    def do_pre_construct(self, request_args, **kwargs):
        """
        Will run the pre_construct processors one by one in the order given.

        :param request_args: Request arguments
        :param kwargs: Extra key word arguments
        :return: A tuple of request_args and post_args. post_args are to be
            used by the post_construct processors.
        """
        _args = self.method_args('pre_construct', **kwargs)
        post_args = process_request_arguments(
            self.config.pre_construct, request_args, self, **_args)
        return request_args, post_args

    def do_post_construct(self, request, **kwargs):
        """
        Will run the post_construct processors one at the time in order.

        :param request: The request message
        :param kwargs: Arguments used by the post_construct processors
        :return: The request
        """
        _args = self.method_args('post_construct', **kwargs)
        process_request_arguments(self.config.post_construct, request, self,
                                  **_args)
        return request

    def construct(self, request_args=None, **kwargs):
        """
        Instantiate the request as a message class instance with
        attribute values gathered in the pre_construct processors.

        :param request_args: Request arguments
        :param kwargs: extra keyword arguments
        :return: message class instance
        """
        _args = dict(self.config.request_args)
        if request_args:
            _args.update(request_args)

        _args, post_args = self.do_pre_construct(_args, **kwargs)

        request = self.config.construct_request(self, _args, **kwargs)

        _post_args = kwargs.copy()
        _post_args.update(post_args)
        return self.do_post_construct(request, **_post_args)

    def construct_request(self, request_args=None, **kwargs):
        return self.construct(request_args, **kwargs)

    def get_endpoint(self, **kwargs):
        """
        Find the service endpoint

        :return: The service endpoint (a URL)
        """
        try:
            _url = kwargs['endpoint']
        except KeyError:
            _url = self.config.get_endpoint(self, **kwargs)

        if not _url:
            raise MissingRequiredAttribute(
                'No endpoint for {}'.format(self.service_name or 'service'))
        return _url

    def get_authn_method(self):
        """
        Find the method that the client should use to authenticate against a
        service.

        :return: The authn/authz method
        """
        return self.config.get_authn_method(self)

    def init_authentication_method(self, request, authn_method,
                                   http_args=None, **kwargs):
        """
        Will run the proper client authentication method.
        Each such method will place the necessary information in the necessary
        place. A method may modify the request.

        :param request: The request, a Message class instance
        :param authn_method: Client authentication method
        :param http_args: HTTP header arguments
        :param kwargs: Extra keyword arguments
        :return: Extended set of HTTP header arguments
        """
        if http_args is None:
            http_args = {}

        if authn_method:
            logger.debug('Client authn method: {}'.format(authn_method))
            return self.client_authn_factory(authn_method).construct(
                request, self, http_args=http_args, **kwargs) or http_args

        return http_args

    def get_authn_header(self, request, authn_method, **kwargs):
        """
        Construct an authorization specification to be sent in the
        HTTP header.

        :param request: The service request
        :param authn_method: Which authentication/authorization method to use
        :param kwargs: Extra keyword arguments
        :return: A set of keyword arguments to be sent in the HTTP header.
        """
        headers = {}
        if authn_method:
            h_arg = self.init_authentication_method(request, authn_method,
                                                    **kwargs)
            try:
                headers = h_arg['headers']
            except KeyError:
                pass

        return headers

    def get_request_parameters(self, request_args=None, method="",
                               request_body_type="", authn_method='',
                               **kwargs):
        """
        Builds the request message and constructs the HTTP headers.

        This is the starting point for a pipeline that will:

        - find out where the request should be sent
        - construct the request message
        - add/remove information to/from the request message in the way a
            specific client authentication method requires.
        - gather a set of HTTP headers like Content-type and Authorization.
        - serialize the request message into the necessary format (JSON,
            urlencoded)

        :param request_args: Message arguments
        :param method: HTTP method used.
        :param request_body_type: Which serialization to use for the HTTP body
        :param authn_method: Client authentication method
        :param kwargs: extra keyword arguments
        :return: Dictionary with the keys 'method', 'url' and possibly
            'body' and 'headers'.
        """
        if not method:
            method = self.config.http_method
        if not authn_method:
            authn_method = self.get_authn_method()
        if not request_body_type:
            request_body_type = self.config.request_body_type

        if method == 'POST':
            content_type = content_type_for(request_body_type)
        else:
            content_type = ''

        endpoint_url = self.get_endpoint(request_args=request_args, **kwargs)

        _kwargs = {k: v for k, v in kwargs.items() if k != 'endpoint'}
        request = self.construct_request(request_args=request_args,
                                         **_kwargs)

        # Client authentication by usage of the Authorization HTTP header
        # or by modifying the request object
        _headers = self.get_authn_header(request, authn_method,
                                         authn_endpoint=self.endpoint_name,
                                         **_kwargs)

        _info = {
            'method': method,
            'url': get_http_url(endpoint_url, request, method=method)
        }

        if method == 'POST':
            _info['body'] = get_http_body(request, content_type)
            _headers['Content-Type'] = content_type

        if _headers:
            _info['headers'] = _headers

        _info = self.config.finalize_request_parameters(self, _info, request,
                                                        **_kwargs)

        logger.debug(REQUEST_INFO.format(_info['url'], method,
                                         _info.get('body', ''),
                                         _info.get('headers', {})))
        return _info

    # ------------------ response handling -----------------------

    @staticmethod
    def get_urlinfo(info):
        """
        Pick out the fragment or query part from a URL.

        :param info: A URL possibly containing a query or a fragment part
        :return: the query/fragment part
        """
        if '?' in info or '#' in info:
            parts = urlparse(info)
            if parts.query:
                info = parts.query
            else:
                info = parts.fragment
        return info

    def gather_verify_arguments(self):
        return self.config.gather_verify_arguments(self)

    def post_parse_response(self, response, **kwargs):
        return self.config.post_parse_response(self, response, **kwargs)

    def _deserialize(self, info, sformat, **kwargs):
        if sformat == 'jwt':
            kwargs['keyjar'] = self.service_context.keyjar
        return self.response_cls().deserialize(info, sformat, **kwargs)

    def verify_response(self, resp):
        """
        Verify the response. All missing required claims are reported
        together, other failures are reported as the message class
        describes them.

        :param resp: The response message
        """
        _missing = [k for k, spec in resp.c_param.items()
                    if spec[VREQUIRED] and k not in resp]
        if _missing:
            raise ResponseVerificationError(
                'Missing required claims: {}'.format(', '.join(_missing)),
                claims=_missing)

        vargs = self.gather_verify_arguments()
        logger.debug("Verify response with {}".format(vargs))
        try:
            resp.verify(**vargs)
        except Exception as err:
            logger.error(
                'Got exception while verifying response: {}'.format(err))
            raise ResponseVerificationError(
                str(err), claims=violated_claims(resp, err), cause=err)

    def parse_response(self, info, sformat="", state="", **kwargs):
        """
        This the start of a pipeline that will:

            1 Deserializes a response into it's response message class.
              Or :py:class:`oidcmsg.oauth2.ErrorResponse` if it's an error
              message
            2 verifies the correctness of the response by running the
              verify method belonging to the message class used.
            3 runs the post_parse_response hook iff the response was not
              an error response.

        :param info: The response, can be either in a JSON or an urlencoded
            format
        :param sformat: Which serialization that was used
        :param state: The state
        :param kwargs: Extra key word arguments
        :return: The parsed and verified response
        """
        if not sformat:
            sformat = self.config.response_body_type

        if sformat not in RESPONSE_FORMATS:
            raise UnsupportedSerializationType(
                "Unsupported response format: '{}'".format(sformat))

        logger.debug('response format: {}'.format(sformat))

        # If format is urlencoded 'info' may be a URL
        # in which case I have to get at the query/fragment part
        if sformat == "urlencoded":
            info = self.get_urlinfo(info)

        logger.debug('response_cls: {}'.format(self.response_cls.__name__))
        try:
            resp = self._deserialize(info, sformat, **kwargs)
        except Exception as err:
            if sformat != 'json':
                logger.error('Error while deserializing: {}'.format(err))
                raise DeserializationError(str(err)) from err

            # Could be a signed JWT but wrongly tagged
            try:
                resp = self._deserialize(info, 'jwt', **kwargs)
            except Exception as jwt_err:
                logger.error('Error while deserializing: {}'.format(err))
                raise DeserializationError(str(err)) from jwt_err

        logger.debug('Initial response parsing => "{}"'.format(resp.to_dict()))

        if is_error_message(resp):
            logger.debug('Error response: {}'.format(resp))
            resp = self.config.error_msg(**resp.to_dict())
            self.verify_response(resp)
            return resp

        self.verify_response(resp)

        resp = self.post_parse_response(resp, state=state)
        if not resp:
            logger.error('Missing or faulty response')
            raise ResponseError("Missing or faulty response")

        return resp

    def update_service_context(self, resp, key='', **kwargs):
        """
        A method run after the response has been parsed and verified.

        :param resp: The response as a :py:class:`oidcmsg.Message` instance
        :param key: The state key, only used by services that store
            responses in the state database
        :param kwargs: Extra key word arguments
        """
        if self.config.stateful:
            if not key:
                raise MissingRequiredAttribute(
                    '{} needs a state key'.format(self.service_name))
        elif key:
            raise ProgrammingError(
                'A state key can not be used when updating from {}'.format(
                    self.service_name))

        if is_error_message(resp):
            raise ResponseError('Can not update from an error response')

        if not isinstance(resp, self.response_cls):
            raise UnexpectedResponseType(
                'Expected {} got {}'.format(self.response_cls.__name__,
                                            type(resp).__name__))

        self.config.update_service_context(self, resp, key=key, **kwargs)

    def consume_response(self, info, sformat="", state="", **kwargs):
        """
        Parse a response and update the service context with it.

        :param info: The response
        :param sformat: Which serialization that was used
        :param state: The state key, for services that store responses
        :return: The parsed response. An error response is returned as is
            without updating anything.
        """
        resp = self.parse_response(info, sformat=sformat, state=state,
                                   **kwargs)
        if is_error_message(resp):
            return resp

        if self.config.stateful:
            if not state:
                state = resp.get('state', '')
            self.update_service_context(resp, key=state)
        else:
            self.update_service_context(resp)
        return resp


def build_services(service_definitions, service_context, state_db,
                   client_authn_factory=None):
    """
    This function will build a number of
    :py:class:`oidcpipeline.service.Service` instances based on the service
    definitions provided.

    :param service_definitions: A dictionary of service definitions or the
        name of a YAML file holding one. The values are dictionaries with the
        keys 'config', a
        :py:class:`oidcpipeline.service_config.ServiceConfig` instance or the
        dotted path to one, and optionally 'conf', a configuration dictionary.
    :param service_context: A reference to the service context, this is the
        same for all service instances.
    :param state_db: A reference to the state database. Shared by all the
        services.
    :param client_authn_factory: A factory of methods the services can use to
        authenticate the client to a service.
    :return: A dictionary, with service name as key and the service instance
        as value.
    """
    if isinstance(service_definitions, str):
        service_definitions = load_yaml_config(service_definitions)

    service = {}
    for name, definition in service_definitions.items():
        _config = definition['config']
        if isinstance(_config, str):
            _config = importer(_config)
        _srv = Service(service_context, state_db, config=_config,
                       conf=definition.get('conf'),
                       client_authn_factory=client_authn_factory)
        service[_srv.service_name or name] = _srv

    return service


def service_factory(service_name, flavour='oidc', service_context=None,
                    state_db=None, conf=None, client_authn_factory=None):
    """
    Build one of the services of a flavour by name.

    :param service_name: The key in the flavour's DEFAULT_SERVICES or the
        service name of its configuration
    :param flavour: 'oauth2' or 'oidc'
    :return: A :py:class:`oidcpipeline.service.Service` instance
    """
    _services = importer('oidcpipeline.{}.DEFAULT_SERVICES'.format(flavour))

    try:
        _config = resolve(_services[service_name]['config'])
    except KeyError:
        for definition in _services.values():
            _config = resolve(definition['config'])
            if _config.service_name == service_name:
                break
        else:
            raise ConfigurationError(
                'No {} service named {}'.format(flavour, service_name))

    return Service(service_context, state_db, config=_config, conf=conf,
                   client_authn_factory=client_authn_factory)
