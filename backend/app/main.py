"""
SEO 文章生成平台 - FastAPI 入口
日志、CORS、校验错误格式、数据库与每日提案调度器的生命周期
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.router import api_router
from app.config import settings
from app.core.task_scheduler import task_scheduler
from app.database.connection import close_db, init_db

# 这些库在 INFO 级别输出过多
_NOISY_LOGGERS = (
    "aiosqlite",
    "sqlalchemy.engine",
    "httpx",
    "apscheduler.scheduler",
    "apscheduler.executors.default",
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
for _name in _NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    启动：建表 → 按配置启动调度器（失败只记日志）
    关闭：停止调度器 → 释放数据库连接
    """
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} 启动中")

    if not settings.DATABASE_URL_OVERRIDE:
        os.makedirs(os.path.dirname(settings.DATABASE_PATH), exist_ok=True)
    await init_db()
    logger.info("数据库就绪")

    if settings.SCHEDULER_ENABLED:
        try:
            task_scheduler.start()
        except Exception as e:
            logger.error(f"任务调度器启动失败，每日提案将不会自动执行: {e}")
    else:
        logger.info("SCHEDULER_ENABLED=false，跳过每日提案调度")

    logger.info(f"服务地址 http://{settings.HOST}:{settings.PORT}，接口文档 /docs")

    yield

    try:
        task_scheduler.shutdown()
    except Exception as e:
        logger.error(f"关闭任务调度器失败: {e}")
    try:
        await close_db()
    except Exception as e:
        logger.error(f"关闭数据库连接失败: {e}")
    logger.info("应用已关闭")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="站点内容方针、SEO 文章大纲、多语言文章生成与每日提案邮件",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """请求校验失败统一 400，detail 只取第一条错误"""
    errors = exc.errors()
    message = str(errors[0].get("msg", "")) if errors else ""
    message = message.removeprefix("Value error, ") or "请求参数错误"
    return JSONResponse(status_code=400, content={"detail": message})


app.include_router(api_router)


@app.get("/", tags=["系统"])
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


@app.get("/health", tags=["系统"])
async def health_check():
    return {"status": "ok"}
