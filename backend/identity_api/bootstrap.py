import asyncio
import os

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.core.config import get_settings
from identity_api.core.database import create_engine_and_sessionmaker, create_tables
from identity_api.models.application import Application
from identity_api.models.tenant import Tenant
from identity_api.services.api_keys import ApiKeyService
from identity_api.services.container import build_services


async def bootstrap_tenant(
    session: AsyncSession,
    api_keys: ApiKeyService,
    application_name: str,
    tenant_name: str,
    tenant_domain: str,
    key_name: str = "bootstrap",
) -> tuple[Application, Tenant, str]:
    """Create (or reuse) an application and tenant, and issue a fresh API key for them."""
    application = (
        await session.execute(
            select(Application).where(Application.name == application_name, Application.deleted_at.is_(None))
        )
    ).scalar_one_or_none()
    if application is None:
        application = Application(name=application_name, is_multitenant=True)
        session.add(application)
        await session.flush()

    tenant = (
        await session.execute(
            select(Tenant).where(
                Tenant.application_id == application.id,
                Tenant.domain == tenant_domain,
                Tenant.deleted_at.is_(None),
            )
        )
    ).scalar_one_or_none()
    if tenant is None:
        tenant = Tenant(application_id=application.id, name=tenant_name, domain=tenant_domain)
        session.add(tenant)
        await session.flush()

    _, raw_key = await api_keys.create(
        session, name=key_name, tenant_id=tenant.id, application_id=application.id
    )
    return application, tenant, raw_key


async def _main() -> None:
    settings = get_settings()
    engine, session_factory = create_engine_and_sessionmaker(settings.SQLALCHEMY_DATABASE_URI)
    services = build_services(settings)
    try:
        await create_tables(engine)
        async with session_factory() as session:
            application, tenant, raw_key = await bootstrap_tenant(
                session,
                services.api_keys,
                os.getenv("BOOTSTRAP_APPLICATION_NAME", "default"),
                os.getenv("BOOTSTRAP_TENANT_NAME", "default"),
                os.getenv("BOOTSTRAP_TENANT_DOMAIN", "localhost"),
            )
    finally:
        await engine.dispose()

    print(f"Application: {application.id} ({application.name})")
    print(f"Tenant:      {tenant.id} ({tenant.name})")
    # Printed once; only its HMAC is stored.
    print(f"API key:     {raw_key}")


if __name__ == "__main__":
    asyncio.run(_main())
