from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbose: bool = False, log_path: Optional[str] = None) -> None:
    """Configure logging.

    - Console: a RichHandler on stderr, WARNING by default and DEBUG with --verbose.
    - File: when `log_path` is given, every record at DEBUG with ISO timestamps.

    Calling it again is a no-op.
    """

    root = logging.getLogger()
    if getattr(root, "_secure_user_setup_configured", False):
        return

    root.setLevel(logging.DEBUG)

    rich_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(rich_handler)

    if log_path:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S%z",
            )
        )
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)

    setattr(root, "_secure_user_setup_configured", True)
    logging.getLogger(__name__).debug("Logging initialized (verbose=%s, file=%s)", verbose, log_path)
