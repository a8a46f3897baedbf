import logging

from oidcmsg import oidc
from oidcmsg.oauth2 import ResponseMessage

from oidcpipeline.exception import ConfigurationError
from oidcpipeline.oauth2 import provider_info_discovery
from oidcpipeline.oidc import PREFERENCE2PROVIDER
from oidcpipeline.oidc import PROVIDER_DEFAULT
from oidcpipeline.service_config import ServiceConfig

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)


def match_preferences(service_context, pcr=None):
    """
    Match the clients preferences against what the provider can do.
    This is to prepare for later client registration and or what
    functionality the client actually will use.
    In the client configuration the client preferences are expressed.
    These are then compared with the Provider Configuration information.
    If the Provider has left some claims out, defaults specified in the
    standard will be used.

    :param service_context: The service context, its behaviour is updated
    :param pcr: Provider configuration response if available
    :raises ConfigurationError: If a preference can not be satisfied
    """
    if not pcr:
        pcr = service_context.provider_info

    regreq = oidc.RegistrationRequest
    _behaviour = service_context.behaviour

    for _pref, _prov in PREFERENCE2PROVIDER.items():
        try:
            vals = service_context.client_preferences[_pref]
        except KeyError:
            continue

        try:
            _pvals = pcr[_prov]
        except KeyError:
            try:
                # If the provider have not specified use what the
                # standard says is mandatory if at all.
                _pvals = PROVIDER_DEFAULT[_pref]
            except KeyError:
                logger.info(
                    'No info from provider on {} and no default'.format(
                        _pref))
                _pvals = vals

        if isinstance(vals, str):
            if vals in _pvals:
                _behaviour[_pref] = vals
        else:
            vtyp = regreq.c_param[_pref]

            if isinstance(vtyp[0], list):
                _behaviour[_pref] = [v for v in vals if v in _pvals]
                if not _behaviour[_pref]:
                    del _behaviour[_pref]
            else:
                for val in vals:
                    if val in _pvals:
                        _behaviour[_pref] = val
                        break

        if _pref not in _behaviour:
            raise ConfigurationError(
                "OP couldn't match preference:%s" % _pref)

    for key, val in service_context.client_preferences.items():
        if key in _behaviour:
            continue

        try:
            vtyp = regreq.c_param[key]
        except KeyError:
            pass
        else:
            if not isinstance(vtyp[0], list) and isinstance(val, list):
                val = val[0]

        if key not in PREFERENCE2PROVIDER:
            _behaviour[key] = val

    logger.debug('service_context behaviour: {}'.format(_behaviour))


def update_service_context(service, resp, key='', **kwargs):
    provider_info_discovery.update_service_context(service, resp, key=key,
                                                   **kwargs)
    match_preferences(service.service_context, resp)

    if service.get_conf_attr('pre_load_keys'):
        _jwks = service.service_context.keyjar.export_jwks_as_json(
            False, resp["issuer"])
        logger.info(
            'Preloaded keys for {}: {}'.format(resp['issuer'], _jwks))


PROVIDER_INFO_DISCOVERY = ServiceConfig(
    service_name='provider_info',
    msg_type=oidc.Message,
    response_cls=oidc.ProviderConfigurationResponse,
    error_msg=ResponseMessage,
    synchronous=True,
    http_method='GET',
    get_endpoint=provider_info_discovery.get_endpoint,
    update_service_context=update_service_context
)
