import logging

from oidcmsg import oidc

from oidcpipeline.oauth2.utils import ExtendAccessTokenRequestArguments
from oidcpipeline.oauth2.utils import set_expires_at
from oidcpipeline.oauth2.utils import store_response
from oidcpipeline.oidc import IDT2REG
from oidcpipeline.oidc.utils import gather_verify_arguments
from oidcpipeline.oidc.utils import store_verified_id_token
from oidcpipeline.service_config import ServiceConfig

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)


def verify_arguments(service):
    return gather_verify_arguments(service, IDT2REG)


def update_service_context(service, resp, key='', **kwargs):
    store_verified_id_token(service, resp, key)
    set_expires_at(resp)
    store_response(service, resp, 'token_response', key)


def get_authn_method(service):
    """
    The method the client registered for, if it did, otherwise the
    service's default.
    """
    try:
        return service.service_context.behaviour['token_endpoint_auth_method']
    except KeyError:
        return service.config.default_authn_method


ACCESS_TOKEN = ServiceConfig(
    service_name='accesstoken',
    msg_type=oidc.AccessTokenRequest,
    response_cls=oidc.AccessTokenResponse,
    error_msg=oidc.ResponseMessage,
    endpoint_name='token_endpoint',
    synchronous=True,
    stateful=True,
    default_authn_method='client_secret_basic',
    http_method='POST',
    request_body_type='urlencoded',
    response_body_type='json',
    pre_construct=[ExtendAccessTokenRequestArguments],
    get_authn_method=get_authn_method,
    gather_verify_arguments=verify_arguments,
    update_service_context=update_service_context
)
