import logging
import os
from typing import Optional

_configured = False


def _configure_root_logger() -> None:
    global _configured
    if _configured:
        return
    # Read the env directly so logging works before settings are loaded
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # provider calls are logged by the vision client
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module logger with consistent formatting.

    If not yet configured, configures the root logger once.
    """
    _configure_root_logger()
    return logging.getLogger(name or "app")
