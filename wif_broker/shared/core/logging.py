import sys
import structlog
import logging
from wif_broker.shared.core.config import get_settings

SENSITIVE_FIELDS = {
    "access_token", "accessToken", "subject_token", "private_key", "privateKey",
    "token", "secret", "authorization", "Authorization", "password",
}


def secret_redactor(logger, method_name, event_dict):
    """
    Redact credentials and key material from logs.
    Access tokens and private keys must never reach the log sink.
    """
    for field in SENSITIVE_FIELDS:
        if field in event_dict:
            event_dict[field] = "[REDACTED]"

    for container in ["headers", "payload", "details", "signals"]:
        if container in event_dict and isinstance(event_dict[container], dict):
            # Copy so the caller's dict is left untouched
            nested = dict(event_dict[container])
            for field in SENSITIVE_FIELDS:
                if field in nested:
                    nested[field] = "[REDACTED]"
            event_dict[container] = nested

    return event_dict


def setup_logging():
    settings = get_settings()

    if settings.DEBUG:
        renderer = structlog.dev.ConsoleRenderer()
        min_level = logging.DEBUG
    else:
        renderer = structlog.processors.JSONRenderer()
        min_level = logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        secret_redactor,
        renderer
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Route stdlib logging (uvicorn, apscheduler, httpx) to stdout as well
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=min_level,
    )
