from identity_api.api.routes import api_keys, auth

__all__ = [
    "auth",
    "api_keys",
]
