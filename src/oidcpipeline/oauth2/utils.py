import logging

from oidcmsg.message import OPTIONAL_LIST_OF_SP_SEP_STRINGS
from oidcmsg.message import SINGLE_OPTIONAL_STRING
from oidcmsg.message import SINGLE_REQUIRED_STRING
from oidcmsg.time_util import time_sans_frac

from oidcpipeline.exception import ErrorDetails
from oidcpipeline.exception import MISSING_REQUIRED_VALUE
from oidcpipeline.exception import StateNotFound
from oidcpipeline.exception import VALUE_NOT_ALLOWED
from oidcpipeline.processor import RequestArgumentProcessor

logger = logging.getLogger(__name__)

# The order in which token responses are consulted, the last one wins.
TOKEN_RESPONSES = ['token_response', 'refresh_token_response']


def get_state_parameter(request_args, kwargs):
    """Find a state value from a set of possible places."""
    try:
        _state = kwargs['state']
    except KeyError:
        _state = request_args.get('state', '')
    return _state


def store_response(service, item, item_type, key):
    """Store a response in the state record, a failure is an error."""
    if not service.store_item(item, item_type, key):
        raise StateNotFound(
            'Could not store {} under "{}"'.format(item_type, key))


def set_expires_at(response):
    if 'expires_in' in response:
        response['__expires_at'] = time_sans_frac() + int(
            response['expires_in'])


class AddClientId(RequestArgumentProcessor):
    c_param = {'client_id': SINGLE_OPTIONAL_STRING}
    writes = ('client_id',)

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        if 'client_id' not in request_args:
            _client_id = service.service_context.client_id
            if _client_id:
                request_args['client_id'] = _client_id


class AddState(RequestArgumentProcessor):
    """
    Makes sure there is a state value and a state record for it.
    A state value given by the caller is used as the key of a new record.
    """
    writes = ('state',)

    @property
    def reads(self):
        return {'state'}

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        _state = get_state_parameter(request_args, kwargs)
        if not isinstance(_state, str):
            _state = ''

        request_args['state'] = service.create_state(
            service.service_context.issuer, _state)
        return {'state': request_args['state']}


class AddResponseType(RequestArgumentProcessor):
    c_param = {'response_type': OPTIONAL_LIST_OF_SP_SEP_STRINGS}
    writes = ('response_type',)

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        if request_args.get('response_type'):
            return

        try:
            _rt = service.service_context.behaviour['response_types'][0]
        except (KeyError, IndexError):
            _rt = 'code'
        request_args['response_type'] = _rt.split(' ')


class PickRedirectUri(RequestArgumentProcessor):
    """
    Picks the redirect_uri to use. With a callback map the response_mode and
    response_type decides, without one the first registered redirect_uri is
    used.
    """
    c_param = {
        'redirect_uri': SINGLE_OPTIONAL_STRING,
        'response_mode': SINGLE_OPTIONAL_STRING,
        'response_type': OPTIONAL_LIST_OF_SP_SEP_STRINGS
    }
    writes = ('redirect_uri',)

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        if request_args.get('redirect_uri'):
            return

        _context = service.service_context
        if _context.callback:
            if request_args.get('response_mode') == 'form_post':
                _key = 'form_post'
            else:
                try:
                    _response_type = ' '.join(request_args['response_type'])
                except KeyError:
                    try:
                        _response_type = _context.behaviour[
                            'response_types'][0]
                    except (KeyError, IndexError):
                        _response_type = 'code'

                if _response_type == 'code':
                    _key = 'code'
                else:
                    _key = 'implicit'

            try:
                request_args['redirect_uri'] = _context.callback[_key]
            except KeyError:
                errors.append(ErrorDetails(
                    'redirect_uri', MISSING_REQUIRED_VALUE,
                    'No "{}" callback'.format(_key)))
        elif _context.redirect_uris:
            request_args['redirect_uri'] = _context.redirect_uris[0]
        else:
            errors.append(ErrorDetails('redirect_uri', MISSING_REQUIRED_VALUE,
                                       'No redirect_uri available'))


class StoreAuthenticationRequest(RequestArgumentProcessor):
    """Stores the constructed authorization request in its state record."""
    c_param = {'state': SINGLE_REQUIRED_STRING}

    def process_verified_arguments(self, request, service, errors, **kwargs):
        if not service.store_item(request, 'auth_request', request['state']):
            errors.append(ErrorDetails(
                'state', MISSING_REQUIRED_VALUE,
                'Could not store the request under "{}"'.format(
                    request['state'])))


class ExtendRequestArguments(RequestArgumentProcessor):
    """
    Adds values from earlier requests and responses in the same exchange.
    Only parameters the request message can carry and that are not already
    present are added. The item types are visited in order and a value in a
    later item replaces one found in an earlier.
    """
    c_param = {'state': SINGLE_OPTIONAL_STRING}
    c_kwargs = {'state': SINGLE_OPTIONAL_STRING}
    item_types = []

    def parameters(self, service):
        return list(service.msg_type.c_param.keys())

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        _state = get_state_parameter(request_args, kwargs)
        if not _state:
            errors.append(ErrorDetails('state', MISSING_REQUIRED_VALUE,
                                       'Need a state to find stored values'))
            return

        try:
            _args = service.multiple_extend_request_args(
                {}, _state, self.parameters(service), self.item_types)
        except StateNotFound as err:
            errors.append(ErrorDetails('state', VALUE_NOT_ALLOWED, str(err),
                                       cause=err))
            return

        for key, val in _args.items():
            if key not in request_args:
                request_args[key] = val

        return {'state': _state}


class ExtendAccessTokenRequestArguments(ExtendRequestArguments):
    item_types = ['auth_request', 'auth_response']

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        _post_args = ExtendRequestArguments.process_verified_arguments(
            self, request_args, service, errors, **kwargs)

        if 'grant_type' not in request_args:
            request_args['grant_type'] = 'authorization_code'

        # The state is only used to find stored values
        if 'state' not in service.msg_type.c_param:
            request_args.pop('state', None)
        return _post_args


class ExtendRefreshAccessTokenRequestArguments(ExtendRequestArguments):
    item_types = TOKEN_RESPONSES

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        _post_args = ExtendRequestArguments.process_verified_arguments(
            self, request_args, service, errors, **kwargs)
        request_args.pop('state', None)
        return _post_args
