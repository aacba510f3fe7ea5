import logging
import sys
import structlog
from coffeevibes.core.config import settings

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str = None, json_logs: bool = None):
    """
    Route both structlog and stdlib logging through one pipeline.

    Console output in development, one JSON object per line elsewhere.
    Context bound with ``bind_contextvars`` (request id, user id) is merged
    into every event.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    if json_logs is None:
        json_logs = settings.ENV.lower() != "development"

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_logs:
        renderer = [
            structlog.processors.CallsiteParameterAdder(
                {
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                }
            ),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=shared_processors + renderer,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level_name)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for _log in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        logger = logging.getLogger(_log)
        logger.handlers = []
        logger.propagate = True
