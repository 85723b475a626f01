import os
import json
import logging

APP_LOGGER_NAME = "assettrack_core"

_configured = False


class JsonFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per record.

    @param dict fmt_dict: output key -> LogRecord attribute. Defaults to {"message": "message"}.
    """
    def __init__(self, fmt_dict: dict = None, time_format: str = "%Y-%m-%dT%H:%M:%S", msec_format: str = "%s.%03dZ"):
        super().__init__()
        self.fmt_dict = fmt_dict if fmt_dict is not None else {"message": "message"}
        self.default_time_format = time_format
        self.default_msec_format = msec_format

    def usesTime(self) -> bool:
        return "asctime" in self.fmt_dict.values()

    def formatMessage(self, record) -> dict:
        return {key: record.__dict__[attr] for key, attr in self.fmt_dict.items()}

    def format(self, record) -> str:
        record.message = record.getMessage()
        if self.usesTime():
            record.asctime = self.formatTime(record, self.datefmt)

        message_dict = self.formatMessage(record)

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            message_dict["exc_info"] = record.exc_text
        if record.stack_info:
            message_dict["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(message_dict, default=str)


def configure_logging(level: str = None) -> logging.Logger:
    """
    Attach a JSON console handler to the application logger.
    Level comes from LOG_LEVEL (default INFO). Safe to call more than once.
    """
    global _configured
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    logger = logging.getLogger(APP_LOGGER_NAME)
    logger.setLevel(getattr(logging, level, logging.INFO))

    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter({
            "timestamp": "asctime",
            "level": "levelname",
            "logger": "name",
            "function": "funcName",
            "line": "lineno",
            "message": "message",
        }))
        logger.addHandler(handler)
        _configured = True

    return logger
