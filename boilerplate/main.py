from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from boilerplate.core.config import settings
from boilerplate.core.errors import install_exception_handlers
from boilerplate.core.http_hardening import configure_logging, install_http_hardening
from boilerplate.api.health import router as health_router
from boilerplate.api.router import router as api_router

configure_logging("WARNING" if settings.APP_ENV == "test" else "INFO")

app = FastAPI(title=settings.APP_NAME, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_http_hardening(app)
install_exception_handlers(app)

app.include_router(health_router, tags=["Health"])
app.include_router(api_router, prefix=settings.API_PREFIX)
