"""
Structlog 日志配置模块

HTTP 请求、Celery 任务与 stdlib 日志（uvicorn/sqlalchemy/httpx）共用一条处理链；
单笔支付处理期间通过 payment_log_context 把 payment_id/provider 附加到每条日志。
"""
import json
import logging
from typing import Any, List

import structlog
from structlog.contextvars import bound_contextvars, merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import settings


# 回调报文中可能出现的敏感字段，输出前统一脱敏
REDACTED_KEYS = {"sha1_hash", "secret", "token", "password", "notification_secret", "admin_token"}


def redact_sensitive(_logger: Any, _method: str, event_dict: dict) -> dict:
    """structlog 处理器：遮蔽顶层敏感字段。"""
    for key in list(event_dict.keys()):
        if key.lower() in REDACTED_KEYS and event_dict[key] is not None:
            event_dict[key] = "***"
    return event_dict


def _use_json() -> bool:
    if settings.log.json_output is not None:
        return settings.log.json_output
    return not settings.DEBUG


def get_renderer() -> Any:
    """控制台（DEBUG）或 JSON 渲染；structlog 会向 serializer 传入 default 等关键字参数"""
    if not _use_json():
        return ConsoleRenderer(colors=True)

    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)
    return JSONRenderer(serializer=_dumps)


def _log_level() -> int:
    if settings.log.level:
        return logging.getLevelName(settings.log.level.upper())
    return logging.DEBUG if settings.DEBUG else logging.INFO


def configure_logging() -> None:
    """配置 structlog 并桥接标准库 logging 到同一处理链。"""
    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        structlog.stdlib.add_logger_name,
        TimeStamper(fmt="iso", utc=True),
        redact_sensitive,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            get_renderer(),
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_log_level())
    # httpx 在 INFO 级别逐条打印请求，降噪
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取 structlog logger 实例。"""
    return structlog.get_logger(name)


def payment_log_context(**context: Any):
    """with 块内的日志自动带上给定字段（None 值忽略），退出时恢复原上下文"""
    return bound_contextvars(**{key: value for key, value in context.items() if value is not None})


# 初始化配置
configure_logging()
