import inspect
import logging
import sys

from loguru import logger

AUDIT_LOG_FILE = "logs/import_audit.jsonl"


class InterceptHandler(logging.Handler):
    """Route standard library logging records (uvicorn, sqlalchemy, httpx) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _is_audit_record(record: dict) -> bool:
    return record["extra"].get("audit", False)


def setup_logging(log_file: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level="INFO", filter=lambda r: not _is_audit_record(r))
    logger.add(
        f"logs/{log_file}",
        level="DEBUG",
        rotation="10 MB",
        retention="14 days",
        filter=lambda r: not _is_audit_record(r),
    )
    # One JSON object per line for every imported / skipped / rejected pull
    logger.add(AUDIT_LOG_FILE, level="INFO", serialize=True, filter=_is_audit_record)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False
