"""
The static description of one protocol operation.

A :py:class:`ServiceConfig` says what a service sends and expects back, how
requests are serialized, which processors run and which hooks adapt the
generic pipeline in :py:mod:`oidcpipeline.service` to the operation.
"""
from types import MappingProxyType

from oidcmsg.message import Message
from oidcmsg.oauth2 import ResponseMessage

from oidcpipeline.exception import ConfigurationError
from oidcpipeline.util import resolve

__author__ = 'Roland Hedberg'


def default_get_endpoint(service, **kwargs):
    """
    Find the service endpoint. A configured endpoint has precedence over
    one learned through provider info discovery.

    :param service: The :py:class:`oidcpipeline.service.Service` instance
    :return: The service endpoint (a URL) or an empty string
    """
    if service.config.endpoint:
        return service.config.endpoint
    return service.service_context.provider_info.get(
        service.config.endpoint_name, '')


def default_construct_request(service, request_args, **kwargs):
    return service.msg_type(**request_args)


def default_get_authn_method(service):
    return service.config.default_authn_method


def default_gather_verify_arguments(service):
    """
    Need to add some information before running verify()

    :return: dictionary with arguments to the verify call
    """
    _context = service.service_context
    kwargs = {
        'client_id': _context.client_id,
        'iss': _context.issuer,
        'keyjar': _context.keyjar,
        'verify': True,
        'skew': _context.clock_skew
    }
    if 'missing_kid' in _context.allow:
        kwargs['allow_missing_kid'] = _context.allow['missing_kid']
    return kwargs


def default_post_parse_response(service, response, **kwargs):
    return response


def default_update_service_context(service, response, key='', **kwargs):
    pass


def default_finalize_request_parameters(service, http_args, request,
                                        **kwargs):
    return http_args


MESSAGE_FIELDS = ['msg_type', 'response_cls', 'error_msg']
PROCESSOR_FIELDS = ['pre_construct', 'post_construct']
MAPPING_FIELDS = ['pre_construct_args', 'post_construct_args', 'request_args']
HOOK_FIELDS = ['get_endpoint', 'construct_request', 'get_authn_method',
               'gather_verify_arguments', 'post_parse_response',
               'update_service_context', 'finalize_request_parameters']

DEFAULTS = {
    'service_name': '',
    'msg_type': Message,
    'response_cls': Message,
    'error_msg': ResponseMessage,
    'endpoint_name': '',
    'endpoint': '',
    'synchronous': True,
    'stateful': False,
    'default_authn_method': '',
    'http_method': 'GET',
    'request_body_type': 'urlencoded',
    'response_body_type': 'json',
    'pre_construct': (),
    'post_construct': (),
    'pre_construct_args': {},
    'post_construct_args': {},
    'request_args': {},
    'get_endpoint': default_get_endpoint,
    'construct_request': default_construct_request,
    'get_authn_method': default_get_authn_method,
    'gather_verify_arguments': default_gather_verify_arguments,
    'post_parse_response': default_post_parse_response,
    'update_service_context': default_update_service_context,
    'finalize_request_parameters': default_finalize_request_parameters,
}


def _processor(spec):
    _proc = resolve(spec)
    if isinstance(_proc, type):
        return _proc()
    return _proc


class ServiceConfig(object):
    """
    Immutable configuration of a service. Use :py:meth:`replace` or
    :py:meth:`from_conf` to derive a modified configuration.
    """

    def __init__(self, **kwargs):
        for key in kwargs:
            if key not in DEFAULTS:
                raise ConfigurationError(
                    'Unknown service configuration parameter: {}'.format(key))

        for key, default in DEFAULTS.items():
            _val = kwargs.get(key, default)
            if key in PROCESSOR_FIELDS:
                _val = tuple(_processor(p) for p in _val)
            elif key in MAPPING_FIELDS:
                _val = MappingProxyType(dict(_val))
            elif key in MESSAGE_FIELDS or key in HOOK_FIELDS:
                _val = resolve(_val)
            object.__setattr__(self, key, _val)

        if self.http_method not in ('GET', 'POST', 'PUT', 'DELETE'):
            raise ConfigurationError(
                'Unsupported HTTP method: {}'.format(self.http_method))

    def __setattr__(self, key, value):
        raise AttributeError(
            "'ServiceConfig' object does not support attribute assignment")

    def __delattr__(self, key):
        raise AttributeError(
            "'ServiceConfig' object does not support attribute deletion")

    def to_dict(self):
        return {key: getattr(self, key) for key in DEFAULTS}

    def replace(self, **kwargs):
        """
        :return: A new configuration with the given values replaced.
        """
        _args = self.to_dict()
        _args.update(kwargs)
        return ServiceConfig(**_args)

    def from_conf(self, conf):
        """
        Overlay a service configuration dictionary. Keys that are not
        configuration parameters are ignored, the service keeps them for
        :py:meth:`oidcpipeline.service.Service.get_conf_attr`.

        :param conf: Dictionary
        :return: A new :py:class:`ServiceConfig` instance
        """
        if not conf:
            return self

        _args = {k: v for k, v in conf.items() if k in DEFAULTS}
        if not _args:
            return self
        return self.replace(**_args)

    def __repr__(self):
        return '<ServiceConfig {}>'.format(self.service_name)
