import logging

from oidcmsg import oidc
from oidcmsg.exception import MissingSigningKey
from oidcmsg.message import Message

from oidcpipeline.exception import StateNotFound
from oidcpipeline.exception import SubMismatch
from oidcpipeline.oauth2.utils import TOKEN_RESPONSES
from oidcpipeline.oauth2.utils import store_response
from oidcpipeline.oidc import UI2REG
from oidcpipeline.oidc.utils import ExtendUserInfoRequestArguments
from oidcpipeline.oidc.utils import gather_verify_arguments
from oidcpipeline.service_config import ServiceConfig

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)


def verified_sub(service, state):
    """
    :return: The subject of the latest verified ID Token for the state or
        None if there is none.
    """
    try:
        return service.get_item('verified_id_token', state)['sub']
    except (StateNotFound, KeyError):
        pass

    try:
        _args = service.multiple_extend_request_args(
            {}, state, ['__verified_id_token'],
            ['auth_response'] + TOKEN_RESPONSES)
    except StateNotFound:
        return None

    try:
        return _args['__verified_id_token']['sub']
    except KeyError:
        return None


def unpack_aggregated_claims(service, response):
    """
    Claims from other sources delivered as signed JWTs are verified and
    added to the response.
    """
    try:
        _csrc = response["_claim_sources"]
    except KeyError:
        return response

    for csrc, spec in _csrc.items():
        if "JWT" in spec:
            try:
                aggregated_claims = Message().from_jwt(
                    spec["JWT"].encode("utf-8"),
                    keyjar=service.service_context.keyjar)
            except MissingSigningKey as err:
                logger.warning(
                    'Error encountered while unpacking aggregated '
                    'claims: {}'.format(err))
            else:
                claims = [value for value, src in
                          response["_claim_names"].items() if src == csrc]

                for key in claims:
                    response[key] = aggregated_claims[key]
        elif 'endpoint' in spec:
            logger.debug(
                'Distributed claims from {} not fetched'.format(
                    spec['endpoint']))

    return response


def post_parse_response(service, response, state='', **kwargs):
    if state:
        _sub = verified_sub(service, state)
        if _sub is None:
            logger.warning("Can not verify value on sub")
        elif response['sub'] != _sub:
            raise SubMismatch('Incorrect "sub" value')

    return unpack_aggregated_claims(service, response)


def update_service_context(service, resp, key='', **kwargs):
    store_response(service, resp, 'user_info', key)


def verify_arguments(service):
    return gather_verify_arguments(service, UI2REG)


USER_INFO = ServiceConfig(
    service_name='userinfo',
    msg_type=Message,
    response_cls=oidc.OpenIDSchema,
    error_msg=oidc.ResponseMessage,
    endpoint_name='userinfo_endpoint',
    synchronous=True,
    stateful=True,
    default_authn_method='bearer_header',
    http_method='GET',
    pre_construct=[ExtendUserInfoRequestArguments],
    gather_verify_arguments=verify_arguments,
    post_parse_response=post_parse_response,
    update_service_context=update_service_context
)
