import logging

from tripbook.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL or "INFO").upper())
    # uvicorn --reload and the test client both re-import main; keep a single handler.
    if any(getattr(h, "_tripbook", False) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._tripbook = True  # type: ignore[attr-defined]
    root.addHandler(handler)
