import logging
import logging.config
from pathlib import Path

def setup_logging(app_config=None) -> logging.Logger:
    """Настройка логирования: консоль + RotatingFileHandler по конфигурации"""
    if app_config is None:
        from focusflow.config import config as app_config

    if app_config.logging.to_file:
        Path(app_config.log_dir).mkdir(exist_ok=True, parents=True)
    logging.config.dictConfig(app_config.get_logging_config())
    return logging.getLogger()
