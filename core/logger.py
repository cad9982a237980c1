import os
import logging
from logging.handlers import TimedRotatingFileHandler

LOG_FORMAT = "%(asctime)s [%(levelname)s] in %(module)s: %(message)s"

_configured = False


def _rotating(path: str, level: int, formatter: logging.Formatter, backups: int) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        path, when="midnight", interval=1, backupCount=backups, encoding="utf-8", delay=True
    )
    handler.suffix = "%Y-%m-%d"
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def setup_logging(log_dir: str = "logs", level: str = "INFO") -> logging.Logger:
    """
    Настраивает логирование приложения.

    app.log:   всё начиная с INFO
    error.log: только ошибки
    sales.log: оформленные заказы и начисленные комиссии (логгер "sales")
    Дублирование в консоль для всех логгеров.
    """
    global _configured
    root = logging.getLogger()
    # streamlit перезапускает скрипт на каждое действие
    if _configured:
        return root
    _configured = True

    os.makedirs(log_dir, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(logging.INFO)

    root.addHandler(_rotating(os.path.join(log_dir, "app.log"), logging.INFO, formatter, 14))
    root.addHandler(_rotating(os.path.join(log_dir, "error.log"), logging.ERROR, formatter, 30))
    root.addHandler(console)

    sales_logger = logging.getLogger("sales")
    sales_logger.setLevel(logging.INFO)
    sales_logger.addHandler(_rotating(os.path.join(log_dir, "sales.log"), logging.INFO, formatter, 30))

    root.info("🚀 Logging initialized successfully.")
    return root
