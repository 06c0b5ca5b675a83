"""Logging setup shared by the CLI and embedding applications."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the ``crew_roster`` logger."""
    root = logging.getLogger("crew_roster")
    root.setLevel(level.upper())
    if not any(getattr(h, "_crew_roster", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._crew_roster = True  # type: ignore[attr-defined]
        root.addHandler(handler)
