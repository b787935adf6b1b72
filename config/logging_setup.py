"""Einrichtung der Protokollierung (logging + rich.logging.RichHandler)."""

import logging

from rich.logging import RichHandler

from config.schema import LoggingConfig

_HANDLER_NAME = "classio-rich"


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """Installiert genau einen RichHandler am Root-Logger.

    Mehrfache Aufrufe setzen nur das Level neu.
    """
    root = logging.getLogger()
    root.setLevel(config.level)
    if not any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        handler = RichHandler(
            rich_tracebacks=config.rich_tracebacks,
            show_path=False,
            markup=False,
        )
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(handler)
    return root
