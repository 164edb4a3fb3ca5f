import logging
import socket
from logging.config import dictConfig

from pythonjsonlogger.json import JsonFormatter

from catalog_service.core.config import settings


class HostnameJsonFormatter(JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["hostname"] = socket.gethostname()


_LOGGING_CONFIGURED = False


def setup_logging(level: str = None):
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    level = (level or settings.LOG_LEVEL).upper()
    # 로깅 설정
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": HostnameJsonFormatter,
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "catalog_service": {
                "handlers": ["console"],
                "level": level,
                "propagate": False
            },
            "uvicorn.access": {
                "handlers": ["console"],
                "level": "WARNING",
                "propagate": False
            },
            "": {  # Root logger
                "handlers": ["console"],
                "level": "INFO",
            },
        }
    }
    dictConfig(log_config)

    # cloudinary / pymongo 는 너무 시끄러움
    logging.getLogger("cloudinary").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    _LOGGING_CONFIGURED = True
