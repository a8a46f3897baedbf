import hashlib
import secrets
import string

__author__ = 'Roland Hedberg'
__version__ = '0.6.0'


OIDCONF_PATTERN = "{}/.well-known/openid-configuration"
CC_METHOD = {
    'S256': hashlib.sha256,
    'S384': hashlib.sha384,
    'S512': hashlib.sha512,
}

# Map the signing context to a signing algorithm
DEF_SIGN_ALG = {"id_token": "RS256",
                "userinfo": "RS256",
                "request_object": "RS256",
                "client_secret_jwt": "HS256",
                "private_key_jwt": "RS256"}

JWT_BEARER = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"


def rndstr(size=16):
    """
    Returns a string of random ascii characters or digits

    :param size: The length of the string
    :return: string
    """
    _basech = string.ascii_letters + string.digits
    return "".join([secrets.choice(_basech) for _ in range(size)])


BASECH = string.ascii_letters + string.digits + '-._~'


def unreserved(size=64):
    """
    Returns a string of random ascii characters, digits and unreserved
    characters

    :param size: The length of the string
    :return: string
    """

    return "".join([secrets.choice(BASECH) for _ in range(size)])


def random_token(nbytes=32):
    """
    A URL safe, base64 encoded, cryptographically random value.

    :param nbytes: Number of random bytes
    :return: string
    """
    return secrets.token_urlsafe(nbytes)
