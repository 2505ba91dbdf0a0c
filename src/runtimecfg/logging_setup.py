import os
import json
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional


def _is_structured(record) -> bool:
    return hasattr(record, 'json_fields') and record.json_fields.get('structured_event', False)


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs compact JSON for structured events and the regular
    format for everything else.
    """
    def format(self, record):
        if _is_structured(record):
            return json.dumps(record.json_fields, separators=(',', ':'), default=str)
        return super().format(record)


class StructuredFilter(logging.Filter):
    """Only allows structured log events through."""
    def filter(self, record):
        return _is_structured(record)


class NonStructuredFilter(logging.Filter):
    """Only allows non-structured log events through."""
    def filter(self, record):
        return not _is_structured(record)


def _attach(logger: logging.Logger, handler: logging.Handler, level: int,
            formatter: logging.Formatter, log_filter: logging.Filter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(log_filter)
    logger.addHandler(handler)


def _rotating_file(path: str, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)


def setup_logger(name: str, level: str, log_file: Optional[str], max_bytes: int, backup_count: int,
                 enable_structured_console: bool = False, enable_structured_file: bool = False,
                 structured_log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the process logger.

    Console output is human readable unless enable_structured_console is set, in
    which case it carries structured events as JSON only. The regular log file
    gets non-structured messages; the structured file gets one JSON object per
    line for structured events.

    Calling it again replaces the handlers installed by the previous call.
    """
    logger = logging.getLogger(name or os.getenv("LOGGER_NAME", "RUNTIMECFG"))
    log_level = getattr(logging, level, logging.INFO)
    logger.setLevel(log_level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    text = logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s')
    as_json = StructuredFormatter()

    if enable_structured_console:
        _attach(logger, logging.StreamHandler(), log_level, as_json, StructuredFilter())
    else:
        _attach(logger, logging.StreamHandler(), log_level, text, NonStructuredFilter())

    files = []
    if log_file:
        files.append((log_file, text, NonStructuredFilter()))
    if enable_structured_file and structured_log_file:
        files.append((structured_log_file, as_json, StructuredFilter()))

    for path, formatter, log_filter in files:
        try:
            _attach(logger, _rotating_file(path, max_bytes, backup_count), log_level, formatter, log_filter)
        except OSError as e:
            logger.warning(f"Cannot log to {path}: {e}")
        else:
            logger.info(f"Logging to {path}")

    return logger
