"""
Logging Configuration - Structured logging setup for the RAG pipeline

Part of the RAG Query Pipeline.

License: MIT
"""

import logging
import logging.config
import sys
import json
from typing import Optional
from datetime import datetime

import structlog

# Attributes every LogRecord carries; anything else arrived through ``extra``
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}

DEFAULT_MAX_FILE_SIZE = 10485760  # 10MB
DEFAULT_BACKUP_COUNT = 5


def setup_logging(
    level: str = "INFO",
    format_type: str = "structured",
    log_file: Optional[str] = None,
    environment: str = "development",
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> None:
    """
    Setup logging configuration for the RAG pipeline.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Format type ('structured', 'simple', 'detailed', 'json')
        log_file: Optional log file path
        environment: 'production' selects JSON rendering through structlog
        max_file_size: Bytes written to log_file before it is rotated
        backup_count: Rotated log files kept
    """
    log_level = level.upper()

    if environment == "production":
        setup_production_logging(log_level, log_file, max_file_size, backup_count)
    else:
        setup_development_logging(
            log_level, format_type.lower(), log_file, max_file_size, backup_count
        )

    configure_external_loggers()


def setup_production_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> None:
    """
    Setup production logging with structured JSON format.

    Records from stdlib loggers pass through the same structlog processor
    chain, so ``extra={...}`` fields land in the JSON output.

    Args:
        level: Logging level
        log_file: Optional log file path
    """
    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.format_exc_info,
                    structlog.processors.UnicodeDecoder(),
                    structlog.processors.JSONRenderer(),
                ],
                "foreign_pre_chain": shared_processors,
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json",
                "stream": sys.stdout,
            }
        },
        "root": {"handlers": ["console"], "level": level},
    }

    # Add file handler if log file specified
    if log_file:
        logging_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "json",
            "filename": log_file,
            "maxBytes": max_file_size,
            "backupCount": backup_count,
        }
        logging_config["root"]["handlers"].append("file")

    logging.config.dictConfig(logging_config)

    logger = logging.getLogger(__name__)
    logger.info(
        "Production logging configured",
        extra={"level": level, "format": "structured_json", "file_logging": log_file is not None},
    )


def setup_development_logging(
    level: str = "DEBUG",
    format_type: str = "simple",
    log_file: Optional[str] = None,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> None:
    """
    Setup development logging with readable format.

    Args:
        level: Logging level
        format_type: Format type ('simple', 'detailed', 'json'); 'structured' maps to 'detailed'
        log_file: Optional log file path
    """
    if format_type == "structured":
        format_type = "detailed"
    if format_type not in ("simple", "detailed", "json"):
        format_type = "simple"

    setup_standard_logging(level, format_type, log_file, max_file_size, backup_count)

    logger = logging.getLogger(__name__)
    logger.info(f"Development logging configured: level={level}, format={format_type}")


def setup_standard_logging(
    level: str = "INFO",
    format_type: str = "simple",
    log_file: Optional[str] = None,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> None:
    """
    Setup standard Python logging.

    Args:
        level: Logging level
        format_type: Format type
        log_file: Optional log file path
    """
    formatters = {
        "simple": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s - %(message)s"
        },
        "json": {"()": JSONFormatter},
    }

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": format_type,
            "stream": sys.stdout,
        }
    }

    # Add file handler if specified
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": format_type,
            "filename": log_file,
            "maxBytes": max_file_size,
            "backupCount": backup_count,
        }

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": handlers,
        "root": {"level": level, "handlers": list(handlers.keys())},
    }

    logging.config.dictConfig(logging_config)


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Add extra fields such as query_id, stage and attempt
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_"):
                log_entry[key] = value

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def configure_external_loggers() -> None:
    """
    Configure logging levels for external libraries.
    """
    # Suppress noisy external loggers
    external_loggers = {
        "urllib3.connectionpool": "WARNING",
        "openai": "WARNING",
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "chromadb": "WARNING",
        "uvicorn.access": "WARNING",
    }

    for logger_name, level in external_loggers.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, level))
