import logging

from oidcmsg import oidc
from oidcmsg.oauth2 import ResponseMessage

from oidcpipeline.oidc.utils import AddClientBehaviourPreference
from oidcpipeline.oidc.utils import AddJwksUriOrJwks
from oidcpipeline.oidc.utils import AddOidcResponseTypes
from oidcpipeline.oidc.utils import AddPostLogoutRedirectUris
from oidcpipeline.oidc.utils import AddRedirectUris
from oidcpipeline.oidc.utils import AddRequestUri
from oidcpipeline.service_config import ServiceConfig

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)


def update_service_context(service, resp, key='', **kwargs):
    _context = service.service_context
    _context.set('registration_response', resp)
    if "token_endpoint_auth_method" not in _context.registration_response:
        _context.registration_response[
            "token_endpoint_auth_method"] = "client_secret_basic"

    _context.client_id = resp["client_id"]

    try:
        _context.client_secret = resp["client_secret"]
    except KeyError:  # Not required
        pass
    else:
        _context.keyjar.add_symmetric('', _context.client_secret)
        try:
            _context.client_secret_expires_at = resp[
                "client_secret_expires_at"]
        except KeyError:
            pass

    try:
        _context.registration_access_token = resp["registration_access_token"]
    except KeyError:
        pass


REGISTRATION = ServiceConfig(
    service_name='registration',
    msg_type=oidc.RegistrationRequest,
    response_cls=oidc.RegistrationResponse,
    error_msg=ResponseMessage,
    endpoint_name='registration_endpoint',
    synchronous=True,
    request_body_type='json',
    http_method='POST',
    pre_construct=[AddClientBehaviourPreference, AddRedirectUris,
                   AddRequestUri, AddPostLogoutRedirectUris, AddJwksUriOrJwks],
    post_construct=[AddOidcResponseTypes],
    update_service_context=update_service_context
)
