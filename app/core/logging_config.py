from __future__ import annotations

import logging
import logging.handlers
import os

SECURITY_LOGGER = "app.security"


def _rotating(path: str, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def configure_logging(*, log_dir: str, level: str = "INFO") -> None:
    os.makedirs(log_dir, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Login attempts, lockouts, bans: also kept apart for auditing,
    # even when the host already configured the root logger.
    security = logging.getLogger(SECURITY_LOGGER)
    security_path = os.path.abspath(os.path.join(log_dir, "security.log"))
    if not any(getattr(h, "baseFilename", None) == security_path for h in security.handlers):
        security.addHandler(_rotating(security_path, formatter))

    if root.handlers:
        return

    console = logging.StreamHandler()
    console.setFormatter(formatter)

    root.addHandler(console)
    root.addHandler(_rotating(os.path.join(log_dir, "app.log"), formatter))


def security_logger() -> logging.Logger:
    return logging.getLogger(SECURITY_LOGGER)
