#

DEFAULT_SERVICES = {
    'provider_info': {
        'config':
            'oidcpipeline.oidc.provider_info_discovery.PROVIDER_INFO_DISCOVERY'
    },
    'registration': {
        'config': 'oidcpipeline.oidc.registration.REGISTRATION'
    },
    'authorization': {
        'config': 'oidcpipeline.oidc.authorization.AUTHORIZATION'
    },
    'accesstoken': {
        'config': 'oidcpipeline.oidc.access_token.ACCESS_TOKEN'
    },
    'refresh_token': {
        'config': 'oidcpipeline.oidc.refresh_access_token.REFRESH_ACCESS_TOKEN'
    },
    'userinfo': {
        'config': 'oidcpipeline.oidc.userinfo.USER_INFO'
    },
    'webfinger': {
        'config': 'oidcpipeline.oidc.webfinger.WEBFINGER'
    }
}

WF_URL = "https://{}/.well-known/webfinger"
OIC_ISSUER = "http://openid.net/specs/connect/1.0/issuer"

IDT2REG = {
    'sigalg': 'id_token_signed_response_alg',
    'encalg': 'id_token_encrypted_response_alg',
    'encenc': 'id_token_encrypted_response_enc'
}

UI2REG = {
    'sigalg': 'userinfo_signed_response_alg',
    'encalg': 'userinfo_encrypted_response_alg',
    'encenc': 'userinfo_encrypted_response_enc'
}

PREFERENCE2PROVIDER = {
    "request_object_signing_alg": "request_object_signing_alg_values_supported",
    "request_object_encryption_alg":
        "request_object_encryption_alg_values_supported",
    "request_object_encryption_enc":
        "request_object_encryption_enc_values_supported",
    "userinfo_signed_response_alg": "userinfo_signing_alg_values_supported",
    "userinfo_encrypted_response_alg":
        "userinfo_encryption_alg_values_supported",
    "userinfo_encrypted_response_enc":
        "userinfo_encryption_enc_values_supported",
    "id_token_signed_response_alg": "id_token_signing_alg_values_supported",
    "id_token_encrypted_response_alg":
        "id_token_encryption_alg_values_supported",
    "id_token_encrypted_response_enc":
        "id_token_encryption_enc_values_supported",
    "default_acr_values": "acr_values_supported",
    "subject_type": "subject_types_supported",
    "token_endpoint_auth_method": "token_endpoint_auth_methods_supported",
    "token_endpoint_auth_signing_alg":
        "token_endpoint_auth_signing_alg_values_supported",
    "response_types": "response_types_supported",
    'grant_types': 'grant_types_supported'
}

PROVIDER_DEFAULT = {
    "token_endpoint_auth_method": "client_secret_basic",
    "id_token_signed_response_alg": "RS256",
}
