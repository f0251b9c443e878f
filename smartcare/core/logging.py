import logging
import sys
import structlog
from pythonjsonlogger import jsonlogger

from smartcare.config import get_settings


def setup_logging(level: int = logging.INFO):
    """Structured logging setup: JSON lines in production, console output otherwise."""
    settings = get_settings()

    json_formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s"
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    # uvicorn --reload re-runs startup; avoid stacking handlers
    if not any(getattr(h, "_smartcare", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(json_formatter)
        handler._smartcare = True
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if settings.debug else level)

    return structlog.get_logger("smartcare")
