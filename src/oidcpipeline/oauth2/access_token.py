import logging

from oidcmsg import oauth2
from oidcmsg.oauth2 import ResponseMessage

from oidcpipeline.oauth2.utils import ExtendAccessTokenRequestArguments
from oidcpipeline.oauth2.utils import set_expires_at
from oidcpipeline.oauth2.utils import store_response
from oidcpipeline.service_config import ServiceConfig

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)


def update_service_context(service, resp, key='', **kwargs):
    set_expires_at(resp)
    store_response(service, resp, 'token_response', key)


ACCESS_TOKEN = ServiceConfig(
    service_name='accesstoken',
    msg_type=oauth2.AccessTokenRequest,
    response_cls=oauth2.AccessTokenResponse,
    error_msg=ResponseMessage,
    endpoint_name='token_endpoint',
    synchronous=True,
    stateful=True,
    default_authn_method='client_secret_basic',
    http_method='POST',
    request_body_type='urlencoded',
    response_body_type='json',
    pre_construct=[ExtendAccessTokenRequestArguments],
    update_service_context=update_service_context
)
