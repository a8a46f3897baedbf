"""
Implements a service context. A Service context is used to keep information
that are common to all the services used by an OAuth2 client or an
OpenID Connect Relying Party.
"""
import copy
import hashlib
import logging
import os

from cryptojwt.jwk.rsa import RSAKey
from cryptojwt.jwk.rsa import import_private_rsa_key_from_file
from cryptojwt.key_bundle import KeyBundle
from cryptojwt.key_jar import KeyJar
from cryptojwt.utils import as_bytes
from oidcmsg.message import Message

logger = logging.getLogger(__name__)

# This represents a map between the local storage of algorithm choices
# and how they are represented in a provider info response.
CLI_REG_MAP = {
    "userinfo": "userinfo_signed_response_alg",
    "id_token": "id_token_signed_response_alg",
    "request_object": "request_object_signing_alg",
}

PROVIDER_INFO_MAP = {
    "id_token": "id_token_signing_alg_values_supported",
    "userinfo": "userinfo_signing_alg_values_supported",
    "request_object": "request_object_signing_alg_values_supported",
}

DEFAULT_VALUE = {
    'client_secret': '',
    'client_id': '',
    'redirect_uris': [],
    'provider_info': {},
    'behaviour': {},
    'client_preferences': {},
    'callback': {},
    'issuer': '',
    'allow': {},
    'base_url': '',
    'requests_dir': '',
    'add_on': {}
}


class ServiceContext(object):
    """
    This class keeps information that a client needs to be able to talk
    to a server. Some of this information comes from configuration and some
    from dynamic provider info discovery or client registration.
    But information is also picked up during the conversation with a server.

    The instance is meant to be owned by one client. Embedders that share it
    between threads must serialize updates themselves.
    """

    def __init__(self, keyjar=None, config=None, **kwargs):
        if config is None:
            config = {}
        self.config = config

        self.keyjar = keyjar or KeyJar()

        self.registration_response = {}
        self.registration_access_token = ''
        self.client_secret_expires_at = 0
        self.post_logout_redirect_uris = []
        self.jwks_uri = ''
        self.jwks = None

        _def_value = copy.deepcopy(DEFAULT_VALUE)
        for param, default in _def_value.items():
            self.set(param, config.get(param, default))

        if self.client_secret:
            self.keyjar.add_symmetric('', self.client_secret)

        self.clock_skew = config.get('clock_skew', 15)

        for attr in ['post_logout_redirect_uris', 'jwks_uri', 'jwks']:
            if attr in config:
                setattr(self, attr, config[attr])

        for key, val in kwargs.items():
            setattr(self, key, val)

        if self.requests_dir:
            # make sure the path exists. If not, then make it.
            if not os.path.isdir(self.requests_dir):
                os.makedirs(self.requests_dir)

        try:
            self.import_keys(config['keys'])
        except KeyError:
            pass

    def __setitem__(self, key, value):
        self.set(key, value)

    def __getitem__(self, item):
        try:
            return getattr(self, item)
        except AttributeError:
            raise KeyError(item)

    def __contains__(self, item):
        return getattr(self, item, None) is not None

    def get(self, key, default=None):
        return getattr(self, key, default)

    def set(self, key, value):
        if isinstance(value, Message):
            setattr(self, key, value.to_dict())
        else:
            setattr(self, key, value)

    def filename_from_webname(self, webname):
        """
        A 1<->1 map is maintained between a URL pointing to a file and
        the name of the file in the file system.

        As an example if the base_url is 'https://example.com' and a jwks_uri
        is 'https://example.com/jwks_uri.json' then the filename of the
        corresponding file on the local filesystem would be 'jwks_uri'.
        Relative to the directory from which the RP instance is run.

        :param webname: The published URL
        :return: local filename
        """
        if not webname.startswith(self.base_url):
            raise ValueError("Webname doesn't match base_url")

        _name = webname[len(self.base_url):]
        if _name.startswith('/'):
            return _name[1:]

        return _name

    def generate_request_uris(self, path):
        """
        Need to generate a path that is unique for a OP/RP combo.
        This is to counter the mix-up attack.

        :param path: Leading path
        :return: A list of one unique URL
        """
        _hash = hashlib.sha256()
        try:
            _hash.update(as_bytes(self.provider_info['issuer']))
        except KeyError:
            _hash.update(as_bytes(self.issuer))
        _hash.update(as_bytes(self.base_url))

        if not path.startswith('/'):
            return ['{}/{}/{}'.format(self.base_url, path, _hash.hexdigest())]

        return ['{}{}/{}'.format(self.base_url, path, _hash.hexdigest())]

    def import_keys(self, keyspec):
        """
        The client needs it's own set of keys. It can load them from local
        storage. This method can also register other entities keys provided
        the URL points to a JWKS.

        :param keyspec: {'file': {'rsa': [file names]},
            'url': {issuer: jwks_uri}}
        """
        for where, spec in keyspec.items():
            if where == 'file':
                for typ, files in spec.items():
                    if typ == 'rsa':
                        for fil in files:
                            _key = RSAKey(
                                priv_key=import_private_rsa_key_from_file(fil),
                                use='sig')
                            _bundle = KeyBundle()
                            _bundle.append(_key)
                            self.keyjar.add_kb('', _bundle)
            elif where == 'url':
                for iss, url in spec.items():
                    _bundle = KeyBundle(source=url)
                    self.keyjar.add_kb(iss, _bundle)

    def get_sign_alg(self, typ):
        """
        Signing algorithm for a given context. The negotiated behaviour is
        preferred over what the provider says it supports.

        :param typ: ['id_token', 'userinfo', 'request_object']
        :return: A signing algorithm or None
        """
        try:
            return self.behaviour[CLI_REG_MAP[typ]]
        except KeyError:
            try:
                return self.provider_info[PROVIDER_INFO_MAP[typ]][0]
            except (KeyError, IndexError, TypeError):
                pass

        return None

    def is_allowed(self, what):
        return bool(self.allow.get(what, False))
