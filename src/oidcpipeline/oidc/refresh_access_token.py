import logging

from oidcmsg import oidc

from oidcpipeline.oauth2.utils import ExtendRefreshAccessTokenRequestArguments
from oidcpipeline.oauth2.utils import set_expires_at
from oidcpipeline.oauth2.utils import store_response
from oidcpipeline.oidc.access_token import get_authn_method
from oidcpipeline.oidc.access_token import verify_arguments
from oidcpipeline.oidc.utils import id_token_from_response
from oidcpipeline.service_config import ServiceConfig

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)


def update_service_context(service, resp, key='', **kwargs):
    # A refreshed ID Token carries no nonce
    _idt = id_token_from_response(resp)
    if _idt is not None:
        store_response(service, _idt, 'verified_id_token', key)

    set_expires_at(resp)
    store_response(service, resp, 'refresh_token_response', key)


REFRESH_ACCESS_TOKEN = ServiceConfig(
    service_name='refresh_token',
    msg_type=oidc.RefreshAccessTokenRequest,
    response_cls=oidc.AccessTokenResponse,
    error_msg=oidc.ResponseMessage,
    endpoint_name='token_endpoint',
    synchronous=True,
    stateful=True,
    default_authn_method='client_secret_basic',
    http_method='POST',
    request_body_type='urlencoded',
    response_body_type='json',
    pre_construct=[ExtendRefreshAccessTokenRequestArguments],
    get_authn_method=get_authn_method,
    gather_verify_arguments=verify_arguments,
    update_service_context=update_service_context
)
