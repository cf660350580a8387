"""
Credential redaction for third-party log records.

httpx logs every request URL at INFO, and the generateContent URL carries
the API key as ``?key=``. The filter below masks that parameter on the
``httpx`` and ``httpcore`` loggers before any handler sees the record.
"""

import logging
import re

KEY_PARAM_PATTERN = re.compile(r"([?&]key=)[^&\s\"'>]+")

# logger filters do not apply to child loggers, so httpcore modules are listed
TRANSPORT_LOGGERS = (
    "httpx",
    "httpcore",
    "httpcore.connection",
    "httpcore.connection_pool",
    "httpcore.http11",
    "httpcore.http2",
    "httpcore.proxy",
)


def redact_key_param(text: str) -> str:
    return KEY_PARAM_PATTERN.sub(r"\1***", text)


class KeyParamRedactingFilter(logging.Filter):
    """Rewrite a record's rendered message with the ``key`` parameter masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_key_param(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


_filter = KeyParamRedactingFilter()


def install_redaction_filter() -> None:
    """Attach the filter to the transport loggers. Safe to call repeatedly."""
    for name in TRANSPORT_LOGGERS:
        transport_logger = logging.getLogger(name)
        if _filter not in transport_logger.filters:
            transport_logger.addFilter(_filter)
