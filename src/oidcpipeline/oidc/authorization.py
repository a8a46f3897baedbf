import logging

from oidcmsg import oidc

from oidcpipeline.oauth2 import authorization
from oidcpipeline.oauth2.utils import AddClientId
from oidcpipeline.oauth2.utils import AddResponseType
from oidcpipeline.oauth2.utils import AddState
from oidcpipeline.oauth2.utils import PickRedirectUri
from oidcpipeline.oauth2.utils import StoreAuthenticationRequest
from oidcpipeline.oauth2.utils import set_expires_at
from oidcpipeline.oauth2.utils import store_response
from oidcpipeline.oidc import IDT2REG
from oidcpipeline.oidc.utils import AddNonce
from oidcpipeline.oidc.utils import AddRequestObject
from oidcpipeline.oidc.utils import AddScope
from oidcpipeline.oidc.utils import StoreNonce
from oidcpipeline.oidc.utils import gather_verify_arguments
from oidcpipeline.oidc.utils import store_verified_id_token
from oidcpipeline.processor import RequestArgumentProcessor
from oidcpipeline.service_config import ServiceConfig

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)


class AddConsentPrompt(RequestArgumentProcessor):
    """A request for offline access must ask the user for consent."""
    writes = ('prompt',)

    @property
    def reads(self):
        return {'scope', 'prompt'}

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        if 'offline_access' in request_args.get('scope', []):
            if 'prompt' not in request_args:
                request_args['prompt'] = 'consent'


def update_service_context(service, resp, key='', **kwargs):
    store_verified_id_token(service, resp, key)
    set_expires_at(resp)
    store_response(service, resp, 'auth_response', key)


def verify_arguments(service):
    return gather_verify_arguments(service, IDT2REG)


AUTHORIZATION = ServiceConfig(
    service_name='authorization',
    msg_type=oidc.AuthorizationRequest,
    response_cls=oidc.AuthorizationResponse,
    error_msg=oidc.ResponseMessage,
    endpoint_name='authorization_endpoint',
    synchronous=False,
    stateful=True,
    http_method='GET',
    response_body_type='urlencoded',
    pre_construct=[AddState, AddResponseType, PickRedirectUri, AddClientId,
                   AddScope, AddNonce, AddConsentPrompt],
    post_construct=[StoreNonce, AddRequestObject, StoreAuthenticationRequest],
    gather_verify_arguments=verify_arguments,
    post_parse_response=authorization.post_parse_response,
    update_service_context=update_service_context
)
