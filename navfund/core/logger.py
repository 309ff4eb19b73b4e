"""
Logging для navfund.

Модули получают логгер через get_logger(__name__). Хост-приложение
настраивает вывод один раз через setup_logging().
"""

import logging
import os
import sys

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER_NAME = "navfund"


def setup_logging(level: int | str | None = None, fmt: str = DEFAULT_FORMAT) -> logging.Logger:
    """
    Настройка корневого логгера пакета.

    Args:
        level: Уровень логирования. По умолчанию NAVFUND_LOG_LEVEL или INFO
        fmt: Формат записи

    Returns:
        Корневой логгер пакета
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    if level is None:
        level = os.getenv("NAVFUND_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(level)

    # Повторный вызов не дублирует handlers
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt, DEFAULT_DATEFMT))
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Логгер модуля внутри иерархии navfund.

    Handlers не добавляются: без setup_logging() записи уходят
    в стандартную конфигурацию logging хоста.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
