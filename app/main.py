# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: FastAPI 应用入口

from __future__ import annotations

from contextlib import asynccontextmanager
from fastapi import FastAPI, APIRouter, Request
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, RedirectResponse

from app.routers import auth_router, chat_router, chat_ws_router
from domains.error_domain import AppError
from infrastructures.db.orm.orm_base import AsyncSessionFactory, init_db, close_db_engine
from infrastructures.vconfig import vconfig
from infrastructures.vlogger import RequestContextMiddleware, init_logging, vlogger
from services.auth_service import AuthService
from services.chat.chat_hub import ChatHub
from services.chat.room_store import RoomStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 1) 建表
    await init_db()
    vlogger.info("database schema ensured")

    # 2) 默认 admin
    async with AsyncSessionFactory() as db:
        auth_service = AuthService()
        await auth_service.ensure_default_admin(db)
    vlogger.info("default admin ensured")

    # 3) 实时聊天 hub（进程内唯一，连接/房间状态不落库）
    hub = ChatHub(
        RoomStore(AsyncSessionFactory),
        preview_max_length=vconfig.chat_preview_max_length,
    )
    app.state.chat_hub = hub
    vlogger.info("chat hub started ws_path=%s", vconfig.chat_ws_path)

    try:
        yield
    finally:
        await hub.close()
        app.state.chat_hub = None
        # Close DB engine to release connections cleanly.
        await close_db_engine()
        vlogger.info("application shutdown")


def create_app() -> FastAPI:
    init_logging(vconfig.log_level)

    app = FastAPI(
        title="Storefront Live Chat",
        version="0.1.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    # request context + access logging (http only; websocket connections bind their own id)
    app.add_middleware(RequestContextMiddleware)

    # ---------- Global error handler ----------
    @app.exception_handler(AppError)
    async def _app_error_handler(_req: Request, exc: AppError):
        return JSONResponse(status_code=exc.http_status, content=exc.to_response().model_dump())

    # ---------- CORS ----------
    cors = vconfig.cors_origins.strip()
    if cors == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in cors.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api = APIRouter(prefix="/api")

    @api.get("/health", tags=["system"])
    async def health_check():
        return {"status": "ok"}

    app.include_router(auth_router.router)
    app.include_router(chat_router.router)
    app.include_router(chat_ws_router.router)
    app.include_router(api)

    @app.get("/")
    async def index():
        # 未打包前端静态页面时，直接跳到接口文档。
        return RedirectResponse(url="/api/docs", status_code=302)

    return app


app = create_app()
