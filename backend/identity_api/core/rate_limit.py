from slowapi import Limiter
from slowapi.util import get_remote_address

from identity_api.core.config import Settings

LOGIN_LIMIT = "20/minute"
REGISTER_LIMIT = "10/minute"

_default_limit = "120/minute"


def default_limit() -> str:
    return _default_limit


# Route decorators need the limiter at import time; create_app() configures it.
limiter = Limiter(key_func=get_remote_address, default_limits=[default_limit])


def configure_limiter(settings: Settings) -> Limiter:
    global _default_limit
    _default_limit = settings.RATE_LIMIT_DEFAULT
    limiter.enabled = settings.RATE_LIMIT_ENABLED
    limiter.reset()
    return limiter
