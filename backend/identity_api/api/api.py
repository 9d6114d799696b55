from fastapi import APIRouter, Depends

from identity_api.api.routes import api_keys, auth
from identity_api.core.deps import require_api_key

# The API key binds every caller to a tenant.
api_router = APIRouter(dependencies=[Depends(require_api_key)])
api_router.include_router(auth.router)
api_router.include_router(api_keys.router)
