"""
Correlation state. A state record is created when an authorization request is
made and is later filled with the requests and responses that belong to the
same exchange.
"""
import json
import logging
import threading

from oidcmsg import oauth2
from oidcmsg import oidc
from oidcmsg.message import Message
from oidcmsg.message import SINGLE_OPTIONAL_JSON
from oidcmsg.message import SINGLE_REQUIRED_STRING

from oidcpipeline import random_token
from oidcpipeline.exception import NonceNotFound
from oidcpipeline.exception import StateNotFound

logger = logging.getLogger(__name__)


class State(Message):
    c_param = {
        'iss': SINGLE_REQUIRED_STRING,
        'auth_request': SINGLE_OPTIONAL_JSON,
        'auth_response': SINGLE_OPTIONAL_JSON,
        'token_response': SINGLE_OPTIONAL_JSON,
        'refresh_token_request': SINGLE_OPTIONAL_JSON,
        'refresh_token_response': SINGLE_OPTIONAL_JSON,
        'user_info': SINGLE_OPTIONAL_JSON,
        'verified_id_token': SINGLE_OPTIONAL_JSON,
        'pkce': SINGLE_OPTIONAL_JSON
    }


# The message class an item must be an instance of to be stored in a slot.
ITEM_TYPE = {
    'auth_request': oauth2.AuthorizationRequest,
    'auth_response': oauth2.AuthorizationResponse,
    'token_response': oauth2.AccessTokenResponse,
    'refresh_token_request': oauth2.RefreshAccessTokenRequest,
    'refresh_token_response': oauth2.AccessTokenResponse,
    'user_info': oidc.OpenIDSchema,
    'verified_id_token': oidc.IdToken,
    'pkce': Message
}


class InMemoryStateDataBase(object):
    """
    Key/value store for state records. Values are JSON documents.
    Every key has its own lock so updates of one record are serialized
    without blocking updates of other records.
    """

    def __init__(self):
        self._db = {}
        self._locks = {}

    def get(self, key, default=None):
        return self._db.get(key, default)

    def set(self, key, value):
        self._db[key] = value

    def add(self, key, value):
        """
        Set the value only if the key is not already in use.

        :return: True if the value was added
        """
        return self._db.setdefault(key, value) is value

    def delete(self, key):
        try:
            del self._db[key]
        except KeyError:
            pass
        self._locks.pop(key, None)

    def lock(self, key):
        return self._locks.setdefault(key, threading.RLock())

    def __contains__(self, key):
        return key in self._db

    def __len__(self):
        return len(self._db)


class StateInterface(object):
    def __init__(self, state_db):
        self.state_db = state_db

    def get_state(self, key):
        """
        Get the state connected to a given key.

        :param key: Key into the state database
        :return: A :py:class:`oidcpipeline.state_interface.State` instance
        """
        _data = self.state_db.get(key)
        if not _data:
            raise StateNotFound('Unknown state: "{}"'.format(key))
        return State().from_json(_data)

    def store_item(self, item, item_type, key):
        """
        Store a request or a response in a state record.

        :param item: The item as a :py:class:`oidcmsg.message.Message`
            subclass instance.
        :param item_type: The slot in the state record
        :param key: The key under which the information should be stored in
            the state database
        :return: True if the item was stored, False if there is no such
            state record or the item is not of the type the slot expects.
        """
        try:
            _expected = ITEM_TYPE[item_type]
        except KeyError:
            logger.warning('Unknown item type: {}'.format(item_type))
            return False

        if not isinstance(item, _expected):
            logger.warning('Will not store a {} as {}'.format(
                type(item).__name__, item_type))
            return False

        with self.state_db.lock(key):
            try:
                _state = self.get_state(key)
            except StateNotFound:
                logger.warning('No state record for {}'.format(key))
                return False

            _state[item_type] = item.to_dict()
            self.state_db.set(key, _state.to_json())
        return True

    def get_iss(self, key):
        """
        Get the Issuer ID

        :param key: Key to the information in the state database
        :return: The issuer ID
        """
        return self.get_state(key)['iss']

    def get_item(self, item_type, key, item_cls=None):
        """
        Get a piece of information (a request or a response) from the state
        database.

        :param item_type: Which request/response that is wanted
        :param key: The key to the information in the state database
        :param item_cls: The :py:class:`oidcmsg.message.Message` subclass
            that describes the item, if not the slot's default.
        :return: A :py:class:`oidcmsg.message.Message` instance
        """
        _state = self.get_state(key)
        try:
            _item = _state[item_type]
        except KeyError:
            raise StateNotFound(
                'No "{}" stored for state "{}"'.format(item_type, key))

        if item_cls is None:
            item_cls = ITEM_TYPE.get(item_type, Message)
        return item_cls(**_item)

    def extend_request_args(self, args, item_type, key, parameters,
                            item_cls=None):
        """
        Add a set of parameters and their value to a set of request arguments.

        :param args: A dictionary
        :param item_type: The type of item, this is one of the parameter
            names in the :py:class:`oidcpipeline.state_interface.State` class.
        :param key: The key to the information in the database
        :param parameters: A list of parameters who's values this method
            will return.
        :param item_cls: The :py:class:`oidcmsg.message.Message` subclass
            that describes the item
        :return: A dictionary with keys from the list of parameters and
            values being the values of those parameters in the item.
            If the parameter does not a appear in the item it will not appear
            in the returned dictionary.
        """
        try:
            item = self.get_item(item_type, key, item_cls)
        except StateNotFound:
            pass
        else:
            for parameter in parameters:
                try:
                    args[parameter] = item[parameter]
                except KeyError:
                    pass

        return args

    def multiple_extend_request_args(self, args, key, parameters, item_types):
        """
        Go through a set of items (by their type) and add the attribute-value
        that match the list of parameters to the arguments
        If the same parameter occurs in 2 different items then the value in
        the later one will be the one used.

        :param args: Initial set of arguments
        :param key: Key to the State information in the state database
        :param parameters: A list of parameters that we're looking for
        :param item_types: A list of item_type specifying which items we
            are interested in.
        :return: A possibly augmented set of arguments.
        """
        _state = self.get_state(key)

        for typ in item_types:
            try:
                _item = ITEM_TYPE.get(typ, Message)(**_state[typ])
            except KeyError:
                continue

            for parameter in parameters:
                try:
                    args[parameter] = _item[parameter]
                except KeyError:
                    pass

        return args

    def store_nonce2state(self, nonce, state):
        """
        Store the connection between a nonce value and a state value.
        This allows us later in the game to find the state if we have the nonce.

        :param nonce: The nonce value
        :param state: The state value
        """
        self.state_db.set('__{}__'.format(nonce), json.dumps(state))

    def get_state_by_nonce(self, nonce):
        """
        Find the state value by providing the nonce value.
        Will raise an exception if the nonce value is absent from the state
        data base.

        :param nonce: The nonce value
        :return: The state value
        """
        _state = self.state_db.get('__{}__'.format(nonce))
        if _state:
            return json.loads(_state)
        raise NonceNotFound('Unknown nonce: "{}"'.format(nonce))

    def create_state(self, iss, key=''):
        """
        Create a new state record.

        :param iss: The issuer the exchange is with
        :param key: A state value chosen by the caller. If empty a random one
            is created.
        :return: The key of the new record
        """
        _state = State(iss=iss).to_json()
        if key:
            with self.state_db.lock(key):
                self.state_db.set(key, _state)
            return key

        key = random_token(32)
        while not self.state_db.add(key, _state):
            key = random_token(32)
        return key
