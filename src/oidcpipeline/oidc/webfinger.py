"""
Issuer discovery with WebFinger, RFC 7033, as described in
http://openid.net/specs/openid-connect-discovery-1_0.html#IssuerDiscovery
"""
import logging
from urllib.parse import urlsplit
from urllib.parse import urlunsplit

from oidcmsg import oidc
from oidcmsg.oauth2 import ResponseMessage
from oidcmsg.oidc import JRD

from oidcpipeline.exception import MissingRequiredAttribute
from oidcpipeline.exception import ValueNotAllowed
from oidcpipeline.oidc import OIC_ISSUER
from oidcpipeline.oidc import WF_URL
from oidcpipeline.service_config import ServiceConfig

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)

SCHEME = 0
NETLOC = 1
PATH = 2
QUERY = 3
FRAGMENT = 4


def create_url(part, ignore):
    res = []
    for a in range(0, 5):
        if a in ignore:
            res.append('')
        else:
            res.append(part[a])
    return urlunsplit(tuple(res))


def normalize(resource):
    """
    Given a resource identifier find the domain specifier. Implements
    http://openid.net/specs/openid-connect-discovery-1_0.html#NormalizationSteps

    :param resource: User input
    :return: tuple of normalized resource and authority
    :raises ValueError: If the resource can not be used
    """
    if not resource:
        raise ValueError('Empty resource identifier')

    if resource[0] in ['=', '@', '!']:  # Have no process for handling these
        raise ValueError('Not allowed resource identifier')

    part = urlsplit(resource)
    if not part[SCHEME]:
        if part[NETLOC]:
            raise ValueError('Missing scheme')

        _path = part[PATH]
        if not part[QUERY] and not part[FRAGMENT]:
            if '/' in _path or ':' in _path:
                resource = "https://{}".format(resource)
                authority = urlsplit(resource)[NETLOC]
            else:
                if '@' in _path:
                    authority = _path.split('@')[1]
                else:
                    authority = _path
                resource = 'acct:{}'.format(_path)
        elif part[QUERY]:
            resource = "https://{}?{}".format(_path, part[QUERY])
            authority = urlsplit(resource)[NETLOC]
        else:
            resource = "https://{}".format(_path)
            authority = urlsplit(resource)[NETLOC]
        return resource, authority

    _scheme = part[SCHEME]
    if _scheme not in ['http', 'https', 'acct', 'device']:
        # assume it to be a hostname port combo,
        # eg. example.com:8080
        resource = 'https://{}'.format(resource)
        part = urlsplit(resource)
        authority = part[NETLOC]
        resource = create_url(part, [FRAGMENT])
    elif _scheme in ['http', 'https'] and not part[NETLOC]:
        raise ValueError('No authority part in the resource specification')
    elif _scheme in ['acct', 'device']:
        _path = part[PATH]
        for c in ['/', '?']:
            _path = _path.split(c)[0]

        if '@' in _path:
            authority = _path.split('@')[1]
        elif _scheme == 'device':
            authority = _path
        else:
            raise ValueError(
                'No authority part in the resource specification')
        resource = create_url(part, [FRAGMENT])
    else:
        authority = part[NETLOC]
        resource = create_url(part, [FRAGMENT])

    return resource, authority


def find_resource(service, request_args=None, **kwargs):
    """
    The resource is looked for among the request arguments, the keyword
    arguments and last in the configuration.
    """
    if request_args and request_args.get('resource'):
        return request_args['resource']

    if kwargs.get('resource'):
        return kwargs['resource']

    _resource = service.get_conf_attr('resource')
    if not _resource:
        _resource = service.service_context.config.get('resource')
    if not _resource:
        raise MissingRequiredAttribute('resource')
    return _resource


def get_endpoint(service, request_args=None, **kwargs):
    _resource = find_resource(service, request_args, **kwargs)
    try:
        _, authority = normalize(_resource)
    except ValueError as err:
        raise ValueNotAllowed(str(err))
    return WF_URL.format(authority)


def construct_request(service, request_args, **kwargs):
    _resource = find_resource(service, request_args, **kwargs)
    try:
        resource, _ = normalize(_resource)
    except ValueError as err:
        raise ValueNotAllowed(str(err))

    _rel = kwargs.get('rel') or service.get_conf_attr('rel', OIC_ISSUER)
    return oidc.WebFingerRequest(resource=resource, rel=_rel)


def update_service_context(service, resp, key='', **kwargs):
    try:
        links = resp['links']
    except KeyError:
        raise MissingRequiredAttribute('links')

    _rel = service.get_conf_attr('rel', OIC_ISSUER)
    for link in links:
        if link['rel'] == _rel:
            _href = link['href']
            _http_allowed = service.service_context.is_allowed(
                'http_links') or service.get_conf_attr(
                'allow', default={}).get('http_links', False)

            if _href.startswith('http://') and not _http_allowed:
                raise ValueNotAllowed(
                    'http link not allowed ({})'.format(_href))

            service.service_context.issuer = _href
            return

    raise MissingRequiredAttribute('No link with rel "{}"'.format(_rel))


WEBFINGER = ServiceConfig(
    service_name='webfinger',
    msg_type=oidc.WebFingerRequest,
    response_cls=JRD,
    error_msg=ResponseMessage,
    synchronous=True,
    http_method='GET',
    response_body_type='json',
    get_endpoint=get_endpoint,
    construct_request=construct_request,
    update_service_context=update_service_context
)
