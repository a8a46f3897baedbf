import logging

from oidcmsg import oauth2
from oidcmsg.oauth2 import ResponseMessage

from oidcpipeline.oauth2.utils import ExtendRefreshAccessTokenRequestArguments
from oidcpipeline.oauth2.utils import set_expires_at
from oidcpipeline.oauth2.utils import store_response
from oidcpipeline.service_config import ServiceConfig

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)


def update_service_context(service, resp, key='', **kwargs):
    set_expires_at(resp)
    store_response(service, resp, 'refresh_token_response', key)


REFRESH_ACCESS_TOKEN = ServiceConfig(
    service_name='refresh_token',
    msg_type=oauth2.RefreshAccessTokenRequest,
    response_cls=oauth2.AccessTokenResponse,
    error_msg=ResponseMessage,
    endpoint_name='token_endpoint',
    synchronous=True,
    stateful=True,
    default_authn_method='client_secret_basic',
    http_method='POST',
    request_body_type='urlencoded',
    response_body_type='json',
    pre_construct=[ExtendRefreshAccessTokenRequestArguments],
    update_service_context=update_service_context
)
