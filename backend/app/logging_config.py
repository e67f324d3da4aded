import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union

FORMAT = (
    "%(asctime)s | %(levelname)-7s | %(name)s | "
    "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
)
formatter = logging.Formatter(FORMAT)


def _file_handler(path: Path, level=logging.INFO) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _attach(logger: logging.Logger, handler: logging.Handler) -> None:
    for h in logger.handlers:
        if getattr(h, "baseFilename", None) == getattr(handler, "baseFilename", None):
            handler.close()
            return
    logger.addHandler(handler)


def setup_logging(log_dir: Path = Path("logs"), level: Union[int, str] = logging.INFO) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)

    # --- Core (manager, config, api) ---
    core_handler = _file_handler(log_dir / "core.log", level=level)

    core_parent = logging.getLogger("integrations")
    core_parent.setLevel(level)
    _attach(core_parent, core_handler)
    core_parent.propagate = False

    # --- Store (staging, rollback, eviction) ---
    store_handler = _file_handler(log_dir / "store.log", level=logging.DEBUG)

    store_parent = logging.getLogger("integrations.store")
    store_parent.setLevel(logging.DEBUG)
    _attach(store_parent, store_handler)
    _attach(store_parent, core_handler)
    store_parent.propagate = False

    # --- Uvicorn ---
    uvicorn_handler = _file_handler(log_dir / "uvicorn.log")
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        ul = logging.getLogger(name)
        _attach(ul, uvicorn_handler)
        ul.propagate = False
