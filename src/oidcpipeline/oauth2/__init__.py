"""
Service configurations for plain OAuth2.
"""
DEFAULT_SERVICES = {
    'provider_info': {
        'config':
            'oidcpipeline.oauth2.provider_info_discovery.PROVIDER_INFO_DISCOVERY'
    },
    'authorization': {
        'config': 'oidcpipeline.oauth2.authorization.AUTHORIZATION'
    },
    'accesstoken': {
        'config': 'oidcpipeline.oauth2.access_token.ACCESS_TOKEN'
    },
    'refresh_token': {
        'config':
            'oidcpipeline.oauth2.refresh_access_token.REFRESH_ACCESS_TOKEN'
    }
}
