"""ログ設定。"""

import logging

from timetrack.config import AppConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(config: AppConfig) -> None:
    """ルートロガーにコンソール出力と任意のファイル出力を設定する。

    Raises:
        ValueError: log_level が不正な場合
    """
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {config.log_level}")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    logging.getLogger(__name__).debug("Logging configured at %s", config.log_level)
