__author__ = 'roland'

# Kinds of violations a request argument processor can report
MISSING_REQUIRED_VALUE = 'missing_required_value'
INVALID_VALUE_FORMAT = 'invalid_value_format'
VALUE_NOT_ALLOWED = 'value_not_allowed'


class OidcServiceError(Exception):
    def __init__(self, errmsg, content_type="", *args):
        Exception.__init__(self, errmsg, *args)
        self.content_type = content_type


class MissingRequiredAttribute(OidcServiceError):
    pass


class ValueNotAllowed(OidcServiceError):
    pass


class UnsupportedSerializationType(OidcServiceError):
    pass


class DeserializationError(OidcServiceError):
    pass


class ResponseError(OidcServiceError):
    pass


class UnexpectedResponseType(OidcServiceError):
    pass


class ContextMismatch(OidcServiceError):
    pass


class ParameterError(OidcServiceError):
    pass


class SubMismatch(OidcServiceError):
    pass


class ConfigurationError(OidcServiceError):
    pass


class ProgrammingError(OidcServiceError):
    """A library function was used in a way it doesn't support."""
    pass


class StateNotFound(OidcServiceError, KeyError):
    pass


class NonceNotFound(OidcServiceError, KeyError):
    pass


class ResponseVerificationError(OidcServiceError):
    """
    A response failed verification.

    :param errmsg: Error message
    :param claims: The names of the claims that caused the failure
    :param cause: The exception raised by the message class, if any
    """

    def __init__(self, errmsg, claims=None, cause=None):
        OidcServiceError.__init__(self, errmsg)
        self.claims = claims or []
        self.cause = cause


class ErrorDetails(object):
    """One violation found while processing request arguments."""

    def __init__(self, parameter, error_type, message='', cause=None):
        self.parameter = parameter
        self.error_type = error_type
        self.message = message
        self.cause = cause

    def __eq__(self, other):
        if not isinstance(other, ErrorDetails):
            return False
        return (self.parameter, self.error_type) == (other.parameter,
                                                     other.error_type)

    def __repr__(self):
        return '<ErrorDetails {} {}: {}>'.format(self.parameter,
                                                 self.error_type, self.message)


class RequestArgumentProcessingError(OidcServiceError):
    """
    Raised once per processing stage, listing every violation that was found.
    """

    def __init__(self, details):
        self.details = list(details)
        _msg = '; '.join(
            '{}: {}'.format(d.parameter, d.message or d.error_type)
            for d in self.details)
        OidcServiceError.__init__(self, _msg)

    @property
    def parameters(self):
        return [d.parameter for d in self.details]
