"""
Request argument processors. A processor inspects, verifies and augments the
arguments a request is built from. Processors run in stages, before the
request message is constructed (pre_construct) and after (post_construct).

Every processor declares the parameters it reads, using the same parameter
specifications as :py:class:`oidcmsg.message.Message`, and the parameters it
writes. Declared parameters are checked and coerced before the processor's
own logic runs. All violations found during a stage are reported together.
"""
import json
import logging

from oidcmsg.message import sp_sep_list_deserializer

from oidcpipeline.exception import ErrorDetails
from oidcpipeline.exception import INVALID_VALUE_FORMAT
from oidcpipeline.exception import MISSING_REQUIRED_VALUE
from oidcpipeline.exception import RequestArgumentProcessingError

logger = logging.getLogger(__name__)

__author__ = 'Roland Hedberg'


def coerce_value(value, spec):
    """
    Normalize a value according to a parameter specification.

    :param value: The value
    :param spec: A parameter specification tuple
        (type, required, serializer, deserializer, null_allowed)
    :return: The normalized value
    :raises ValueError: If the value can not be coerced
    """
    vtyp, _, _, _deser, _ = spec

    if isinstance(vtyp, list):
        _etyp = vtyp[0]
        if isinstance(value, str):
            if _deser is sp_sep_list_deserializer:
                value = value.split()
            else:
                value = [value]
        elif isinstance(value, tuple):
            value = list(value)

        if not isinstance(value, list):
            raise ValueError('Expected a list, got {}'.format(
                type(value).__name__))
        for item in value:
            if not isinstance(item, _etyp):
                raise ValueError('Expected items of type {}'.format(
                    _etyp.__name__))
        return value

    if vtyp is str:
        if isinstance(value, list) and len(value) == 1:
            value = value[0]
        if not isinstance(value, str):
            raise ValueError('Expected a string, got {}'.format(
                type(value).__name__))
        return value

    if vtyp is int:
        if isinstance(value, bool):
            raise ValueError('Expected an integer, got a boolean')
        return int(value)

    if vtyp is bool:
        if isinstance(value, bool):
            return value
        if value in ('true', 'True'):
            return True
        if value in ('false', 'False'):
            return False
        raise ValueError('Expected a boolean')

    if vtyp is dict:
        if isinstance(value, str):
            value = json.loads(value)
        if not isinstance(value, dict):
            raise ValueError('Expected a dictionary')
        return value

    if isinstance(vtyp, type) and vtyp is not object:
        if not isinstance(value, vtyp):
            raise ValueError('Expected a {}'.format(vtyp.__name__))

    return value


def verify_parameters(params, c_param):
    """
    Check presence and format of declared parameters. Values that can be
    coerced are replaced in place.

    :param params: Dictionary like object with parameter values
    :param c_param: Parameter specifications
    :return: list of :py:class:`oidcpipeline.exception.ErrorDetails`
    """
    errors = []
    for name, spec in c_param.items():
        _val = params.get(name)
        if _val is None or _val == '' or _val == []:
            if spec[1]:
                errors.append(ErrorDetails(
                    name, MISSING_REQUIRED_VALUE,
                    'Missing required value'))
            continue

        try:
            _coerced = coerce_value(_val, spec)
        except (ValueError, TypeError) as err:
            errors.append(ErrorDetails(name, INVALID_VALUE_FORMAT, str(err),
                                       cause=err))
        else:
            if _coerced is not _val:
                params[name] = _coerced
    return errors


class RequestArgumentProcessor(object):
    """
    Base class for request argument processors.

    c_param: specification of the request arguments the processor uses.
    c_kwargs: specification of the keyword arguments the processor uses.
    writes: names of the request arguments the processor may set.
    """
    c_param = {}
    c_kwargs = {}
    writes = ()

    @property
    def reads(self):
        return set(self.c_param.keys()) | set(self.c_kwargs.keys())

    def verify_arguments(self, request_args, kwargs):
        errors = verify_parameters(request_args, self.c_param)
        errors.extend(verify_parameters(kwargs, self.c_kwargs))
        return errors

    def process_verified_arguments(self, request_args, service, errors,
                                   **kwargs):
        """
        The processor's own logic. Only run if the declared parameters
        verified.

        :param request_args: Request arguments, modified in place
        :param service: The :py:class:`oidcpipeline.service.Service` instance
        :param errors: List where further violations are appended
        :param kwargs: Extra keyword arguments
        :return: A dictionary of arguments for the post_construct stage or
            None
        """
        raise NotImplementedError()

    def __call__(self, request_args, service, **kwargs):
        """
        :return: tuple of post_construct arguments and a list of violations
        """
        errors = self.verify_arguments(request_args, kwargs)
        if errors:
            return {}, errors

        try:
            post_args = self.process_verified_arguments(
                request_args, service, errors, **kwargs)
        except RequestArgumentProcessingError as err:
            errors.extend(err.details)
            post_args = {}

        return post_args or {}, errors

    def __repr__(self):
        return self.__class__.__name__


def commutes(first, second):
    """
    Two processors may be run in any order if neither writes a parameter
    that the other reads or writes.
    """
    _first_w = set(first.writes)
    _second_w = set(second.writes)
    if _first_w & (second.reads | _second_w):
        return False
    if _second_w & first.reads:
        return False
    return True


def process_request_arguments(processors, request_args, service, **kwargs):
    """
    Run a stage of processors. Every processor is run even if an earlier one
    reported violations.

    :param processors: The processors, in order
    :param request_args: Request arguments, modified in place
    :param service: The :py:class:`oidcpipeline.service.Service` instance
    :param kwargs: Keyword arguments handed to every processor
    :return: The combined post_construct arguments
    :raises RequestArgumentProcessingError: If any processor reported a
        violation
    """
    post_args = {}
    errors = []
    for proc in processors:
        _post_args, _errors = proc(request_args, service, **kwargs.copy())
        if _errors:
            logger.debug('{} reported: {}'.format(proc, _errors))
            errors.extend(_errors)
        else:
            post_args.update(_post_args)

    if errors:
        raise RequestArgumentProcessingError(errors)

    return post_args
