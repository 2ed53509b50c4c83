"""
FastAPI应用主入口：支付回调、运维接口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import admin as admin_routes
from api.routes import webhooks as webhook_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from core.settings import payment_settings
from infrastructure.database import create_tables, engine
from infrastructure.external.payments import SUPPORTED_PROVIDERS


configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 仅开发环境自动建表，生产使用 alembic upgrade head
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    logger.info(
        "payments_service_started",
        providers=list(SUPPORTED_PROVIDERS),
        control_plane_configured=bool(payment_settings.remnawave.api_url and payment_settings.remnawave.admin_token),
        telegram_configured=bool(payment_settings.telegram.bot_token),
        yoomoney_secret_configured=bool(payment_settings.yoomoney.notification_secret),
        admin_api_enabled=bool(settings.ADMIN_API_TOKEN),
    )
    yield
    await engine.dispose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="支付回调对账与履约服务（Platega / YooKassa / YooMoney）",
)

# 中间件按添加顺序由内向外：日志依赖 request_id，故 RequestID 后添加（更外层）
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
if settings.CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

register_exception_handlers(app)

app.include_router(webhook_routes.router, prefix="/api/v1")
app.include_router(admin_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "webhooks": [f"/api/v1/webhooks/{provider}" for provider in SUPPORTED_PROVIDERS],
        },
        message="Welcome",
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
