"""
Logging setup for the livechat departments service.

Log records from every module go through the root logger, so the
service modules only call ``logging.getLogger(__name__)``.  The
handlers installed here carry names, which lets ``setup_logging`` run
again (tests build one app per test, uvicorn reloads) without adding a
second copy of a handler.  Uvicorn's per-request access log can be
switched off because every department operation already logs its own
outcome.
"""

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CONSOLE_HANDLER_NAME = "livechat-console"
FILE_HANDLER_NAME = "livechat-file"


def resolve_level(level: Union[str, int, None]) -> int:
    """Turn ``"debug"``, ``"20"`` or ``20`` into a logging level; unknown values give ``INFO``."""
    if isinstance(level, int):
        return level
    if not level:
        return logging.INFO
    text = str(level).strip()
    if text.isdigit():
        return int(text)
    resolved = logging.getLevelName(text.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: Union[str, int] = "INFO",
    logfile: Optional[str] = None,
    access_log: bool = True,
) -> None:
    """Configure the root logger for the service.

    Parameters
    ----------
    level : str or int
        Level name or number applied to the root logger.
    logfile : Optional[str]
        Also write records to this file.  Missing parent directories
        are created.
    access_log : bool
        When false, ``uvicorn.access`` records are dropped.
    """
    root = logging.getLogger()
    root.setLevel(resolve_level(level))
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    installed = {handler.get_name(): handler for handler in root.handlers}

    if CONSOLE_HANDLER_NAME not in installed:
        console_handler = logging.StreamHandler()
        console_handler.set_name(CONSOLE_HANDLER_NAME)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    if logfile:
        log_path = Path(logfile).resolve()
        current = installed.get(FILE_HANDLER_NAME)
        if current is not None and Path(current.baseFilename) != log_path:
            root.removeHandler(current)
            current.close()
            current = None
        if current is None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.set_name(FILE_HANDLER_NAME)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    logging.getLogger("uvicorn.access").disabled = not access_log
