import logging
import os
import sys
from types import FrameType
from loguru import logger
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry._logs import set_logger_provider

from statichost.core.telemetry import build_resource, otlp_endpoint, otlp_insecure

HIJACKED_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "gunicorn.error",
    "gunicorn.access",
    "fastapi",
    "sqlalchemy.engine",
    "statichost",
)

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> <level>{level: <8}</level> "
    "<cyan>[{name}:{line}]</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """
    Redirects standard logging to Loguru.
    OpenTelemetry's own records are dropped so the OTel sink cannot feed itself.
    """

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.startswith("opentelemetry"):
            return

        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that called the stdlib logger
        frame: FrameType | None = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _add_otel_sink(level: str) -> None:
    endpoint = otlp_endpoint()
    if not endpoint:
        return
    try:
        logger_provider = LoggerProvider(resource=build_resource())
        set_logger_provider(logger_provider)
        exporter = OTLPLogExporter(endpoint=endpoint, insecure=otlp_insecure())
        logger_provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
        otel_handler = LoggingHandler(
            level=logging.getLevelName(level), logger_provider=logger_provider
        )
        logger.add(otel_handler, level=level, serialize=True)
        logger.info("Logging (Loguru Sink) Active.")
    except Exception as e:
        # The console sink is already up, a broken exporter must not stop the app
        print(f"Log Setup Failed: {e}", file=sys.stderr)


def setup_logging(level: str | None = None):
    """
    Route every logger through Loguru and configure its sinks.

    Standard-library handlers of the web server, ORM and storage client are replaced
    by an InterceptHandler so each record is printed once. The console sink is
    coloured for development and JSON-serialized when ENVIRONMENT is production.
    An OpenTelemetry sink is added when OTEL_EXPORTER_OTLP_ENDPOINT is set.

    Parameters:
        level (str | None): Minimum level; defaults to the LOG_LEVEL env var or INFO.

    Returns:
        The configured loguru logger.
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(level)

    for name in HIJACKED_LOGGERS:
        log = logging.getLogger(name)
        log.handlers = []
        log.propagate = False
        log.addHandler(InterceptHandler())

    logger.remove()
    if os.getenv("ENVIRONMENT", "development").lower() == "production":
        logger.add(sys.stderr, level=level, serialize=True, enqueue=True)
    else:
        logger.add(
            sys.stderr,
            level=level,
            format=CONSOLE_FORMAT,
            colorize=True,
            enqueue=True,
        )

    _add_otel_sink(level)
    return logger
