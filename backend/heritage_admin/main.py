from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from heritage_admin.core.config import settings
from heritage_admin.core.errors import register_exception_handlers
from heritage_admin.core.logging import configure_logging
import heritage_admin.models  # noqa: F401  # force model registration

from heritage_admin.api.v1.account import router as account_router
from heritage_admin.api.v1.auth import router as auth_router
from heritage_admin.api.v1.billing import router as billing_router
from heritage_admin.api.v1.invites import router as invites_router
from heritage_admin.api.v1.locations import router as locations_router
from heritage_admin.api.v1.support_tickets import admin_router as admin_support_router
from heritage_admin.api.v1.support_tickets import router as support_router
from heritage_admin.api.v1.tenants import router as tenants_router


def create_application() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Heritage Admin API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "heritage-admin"}

    # Routers
    app.include_router(auth_router, prefix="/api")
    app.include_router(tenants_router, prefix="/api")
    app.include_router(invites_router, prefix="/api")
    app.include_router(locations_router, prefix="/api")
    app.include_router(support_router, prefix="/api")
    app.include_router(admin_support_router, prefix="/api")
    app.include_router(account_router, prefix="/api")
    app.include_router(billing_router, prefix="/api")

    return app


app = create_application()
