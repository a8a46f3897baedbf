import logging

from oidcmsg import oauth2
from oidcmsg.oauth2 import ResponseMessage

from oidcpipeline.exception import StateNotFound
from oidcpipeline.oauth2.utils import AddClientId
from oidcpipeline.oauth2.utils import AddResponseType
from oidcpipeline.oauth2.utils import AddState
from oidcpipeline.oauth2.utils import PickRedirectUri
from oidcpipeline.oauth2.utils import StoreAuthenticationRequest
from oidcpipeline.oauth2.utils import set_expires_at
from oidcpipeline.oauth2.utils import store_response
from oidcpipeline.service_config import ServiceConfig

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)


def update_service_context(service, resp, key='', **kwargs):
    set_expires_at(resp)
    store_response(service, resp, 'auth_response', key)


def post_parse_response(service, response, state='', **kwargs):
    """
    Add scope claim to response from the request if not present in the
    response

    :param response: The response
    :param state: The state key
    :return: A possibly augmented response
    """
    if "scope" not in response and state:
        try:
            item = service.get_item('auth_request', state)
        except StateNotFound:
            pass
        else:
            try:
                response["scope"] = item["scope"]
            except KeyError:
                pass
    return response


AUTHORIZATION = ServiceConfig(
    service_name='authorization',
    msg_type=oauth2.AuthorizationRequest,
    response_cls=oauth2.AuthorizationResponse,
    error_msg=ResponseMessage,
    endpoint_name='authorization_endpoint',
    synchronous=False,
    stateful=True,
    http_method='GET',
    response_body_type='urlencoded',
    pre_construct=[AddState, AddResponseType, PickRedirectUri, AddClientId],
    post_construct=[StoreAuthenticationRequest],
    post_parse_response=post_parse_response,
    update_service_context=update_service_context
)
