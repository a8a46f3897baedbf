"""
Proof Key for Code Exchange, RFC 7636.
"""
import logging

from cryptojwt.utils import b64e
from oidcmsg.message import Message
from oidcmsg.message import SINGLE_OPTIONAL_STRING

from oidcpipeline import CC_METHOD
from oidcpipeline import unreserved
from oidcpipeline.exception import ConfigurationError
from oidcpipeline.exception import ErrorDetails
from oidcpipeline.exception import MISSING_REQUIRED_VALUE
from oidcpipeline.exception import StateNotFound
from oidcpipeline.exception import VALUE_NOT_ALLOWED
from oidcpipeline.oauth2.utils import get_state_parameter
from oidcpipeline.processor import RequestArgumentProcessor

logger = logging.getLogger(__name__)


def pkce_config(service):
    try:
        _conf = service.service_context.add_on['pkce']
    except KeyError:
        _conf = {}
    return (_conf.get('code_challenge_length', 64),
            _conf.get('code_challenge_method', 'S256'))


def code_challenge(code_verifier, method):
    """
    :param code_verifier: The code verifier
    :param method: Transformation method, one of CC_METHOD
    :return: The base64url encoded hash of the code verifier
    """
    _hash_method = CC_METHOD[method]
    return b64e(_hash_method(code_verifier.encode()).digest()).decode()


class AddCodeChallenge(RequestArgumentProcessor):
    """
    To be added to the pre_construct processors of an authorization
    service, after the state has been set.
    """
    c_param = {'state': SINGLE_OPTIONAL_STRING}
    writes = ('code_challenge', 'code_challenge_method')

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        _state = request_args.get('state')
        if not _state:
            errors.append(ErrorDetails('state', MISSING_REQUIRED_VALUE,
                                       'The code verifier is kept by state'))
            return

        cv_len, _method = pkce_config(service)
        if _method not in CC_METHOD:
            errors.append(ErrorDetails(
                'code_challenge_method', VALUE_NOT_ALLOWED,
                'PKCE Transformation method:{}'.format(_method)))
            return

        # code_verifier: string of length cv_len
        code_verifier = unreserved(cv_len)

        _item = Message(code_verifier=code_verifier,
                        code_challenge_method=_method)
        if not service.store_item(_item, 'pkce', _state):
            errors.append(ErrorDetails(
                'state', VALUE_NOT_ALLOWED,
                'Could not store the code verifier under "{}"'.format(_state)))
            return

        request_args.update({
            "code_challenge": code_challenge(code_verifier, _method),
            "code_challenge_method": _method
        })


class AddCodeVerifier(RequestArgumentProcessor):
    """
    To be added first among the pre_construct processors of an access token
    service.
    """
    c_param = {'state': SINGLE_OPTIONAL_STRING}
    c_kwargs = {'state': SINGLE_OPTIONAL_STRING}
    writes = ('code_verifier',)

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        _state = get_state_parameter(request_args, kwargs)
        if not _state:
            errors.append(ErrorDetails(
                'state', MISSING_REQUIRED_VALUE,
                'Need a state to find the code verifier'))
            return

        try:
            _item = service.get_item('pkce', _state)
        except StateNotFound as err:
            errors.append(ErrorDetails('state', VALUE_NOT_ALLOWED, str(err),
                                       cause=err))
            return

        request_args['code_verifier'] = _item['code_verifier']


add_code_challenge = AddCodeChallenge()
add_code_verifier = AddCodeVerifier()


def add_pkce_support(services, code_challenge_length=64,
                     code_challenge_method='S256'):
    """
    PKCE RFC 7636 support.

    Installs the processors on the authorization and access token services
    and records the settings in the service context.

    :param services: A dictionary with all the services the client has
        access to.
    :param code_challenge_length: Length of the code verifier
    :param code_challenge_method: Transformation method
    """
    if code_challenge_method not in CC_METHOD:
        raise ConfigurationError(
            'Unsupported PKCE transformation method: {}'.format(
                code_challenge_method))

    if not 43 <= code_challenge_length <= 128:
        raise ConfigurationError(
            'A code verifier is between 43 and 128 characters long')

    try:
        _auth = services['authorization']
        _token = services['accesstoken']
    except KeyError:
        logger.warning(
            'PKCE support could NOT be added, missing authorization or '
            'access token service')
        return

    _auth.service_context.add_on['pkce'] = {
        "code_challenge_length": code_challenge_length,
        "code_challenge_method": code_challenge_method
    }

    _pre = list(_auth.config.pre_construct)
    if not [p for p in _pre if isinstance(p, AddCodeChallenge)]:
        _pre.append(add_code_challenge)
        _auth.config = _auth.config.replace(pre_construct=_pre)

    _pre = list(_token.config.pre_construct)
    if not [p for p in _pre if isinstance(p, AddCodeVerifier)]:
        _pre.insert(0, add_code_verifier)
        _token.config = _token.config.replace(pre_construct=_pre)
