from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(logs_dir: Path, *, verbose: bool = False) -> None:
    """Console + file logging for CLI runs. Library code only calls getLogger."""
    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger()
    root.setLevel(level)

    # Re-running in the same process (tests, REPL) must not stack handlers.
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    logs_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(logs_dir / "inbox_digest.log", encoding="utf-8")
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # googleapiclient logs discovery cache warnings at INFO/WARNING on every build().
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
