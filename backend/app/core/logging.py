import logging
import os
import re
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# 第三方库太吵，默认抬高到 WARNING
NOISY_LOGGERS = ("urllib3", "sqlalchemy.engine", "passlib")

_BEARER_RE = re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+", re.IGNORECASE)


class RedactBearerFilter(logging.Filter):
    """Salla 报错信息里偶尔会回显 Authorization 头：落日志前把 token 打码。"""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        if "earer" in msg:
            record.msg = _BEARER_RE.sub(r"\1***", msg)
            record.args = None
        return True


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Uvicorn 在 import 我们的代码之前已经装好 handler；脚本和 pytest 通常没有，这里补一个 stdout handler。
    重复调用是安全的：只调级别，不重复加 handler。
    """
    resolved_level = (level or DEFAULT_LEVEL).upper()
    root_logger = logging.getLogger()

    if not root_logger.handlers:
        logging.basicConfig(
            level=resolved_level,
            format=LOG_FORMAT,
            handlers=[logging.StreamHandler(sys.stdout)],
        )
    else:
        root_logger.setLevel(resolved_level)

    for handler in root_logger.handlers:
        if not any(isinstance(f, RedactBearerFilter) for f in handler.filters):
            handler.addFilter(RedactBearerFilter())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    return logging.getLogger("fulfillment")


logger = configure_logging()
