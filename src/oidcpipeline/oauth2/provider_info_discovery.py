import logging

from oidcmsg import oauth2
from oidcmsg.oauth2 import ResponseMessage

from oidcpipeline import OIDCONF_PATTERN
from oidcpipeline.exception import ContextMismatch
from oidcpipeline.exception import MissingRequiredAttribute
from oidcpipeline.service_config import ServiceConfig

logger = logging.getLogger(__name__)


def get_endpoint(service, **kwargs):
    """
    Find the issuer ID and from it construct the service endpoint

    :return: Service endpoint
    """
    _iss = service.config.endpoint or service.service_context.issuer
    if not _iss:
        return ''

    if _iss.endswith('/'):
        return OIDCONF_PATTERN.format(_iss[:-1])
    return OIDCONF_PATTERN.format(_iss)


def match_issuer(context_issuer, pcr_issuer):
    """
    The issuer in the provider info may differ from the one the client was
    configured with by a trailing slash.

    :return: The configured issuer in the form the provider uses
    """
    if pcr_issuer.endswith("/"):
        if context_issuer.endswith("/"):
            return context_issuer
        return context_issuer + "/"

    return context_issuer.rstrip('/')


def update_service_context(service, resp, key='', **kwargs):
    """
    Deal with Provider Config Response. Based on the provider info
    response a set of parameters in different places needs to be set.

    :param service: The service
    :param resp: The provider info response
    """
    _context = service.service_context
    issuer = _context.issuer
    if not issuer:
        raise MissingRequiredAttribute("Service context is missing 'issuer'")

    # Verify that the issuer value received is the same as the
    # url that was used as service endpoint (without the .well-known part)
    if "issuer" in resp:
        _pcr_issuer = resp["issuer"]
        _issuer = match_issuer(issuer, _pcr_issuer)

        # In some cases we can live with the two URLs not being
        # the same. But this is an exception that has to be explicit
        if not _context.is_allowed('issuer_mismatch'):
            if _issuer != _pcr_issuer:
                raise ContextMismatch(
                    "provider info issuer mismatch '%s' != '%s'" % (
                        _issuer, _pcr_issuer))
    else:  # No prior knowledge
        _pcr_issuer = issuer

    _context.issuer = _pcr_issuer
    _context.set('provider_info', resp)

    # Load the keys. Note that this only means that the key specification
    # is loaded not necessarily that any keys are fetched.
    if 'jwks_uri' in resp:
        _context.keyjar.load_keys(_pcr_issuer, jwks_uri=resp['jwks_uri'])
    elif 'jwks' in resp:
        _context.keyjar.load_keys(_pcr_issuer, jwks=resp['jwks'])


PROVIDER_INFO_DISCOVERY = ServiceConfig(
    service_name='provider_info',
    msg_type=oauth2.Message,
    response_cls=oauth2.ASConfigurationResponse,
    error_msg=ResponseMessage,
    synchronous=True,
    http_method='GET',
    get_endpoint=get_endpoint,
    update_service_context=update_service_context
)
