"""
Day-partitioned log files.

`app-YYYY-MM-DD.log` receives everything the root logger emits;
`access-YYYY-MM-DD.log` receives only the request lines of `ACCESS_LOGGER`.
"""
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
ACCESS_LOGGER = "blogapi.access"


class DailyFileHandler(logging.FileHandler):
    """Appends to `<prefix>-<UTC date>.log`, switching files when the date changes."""

    def __init__(self, log_dir: str, prefix: str, clock: Optional[Callable[[], datetime]] = None):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        super().__init__(self.path_for(self.clock()), encoding="utf-8", delay=True)

    def path_for(self, moment: datetime) -> Path:
        return self.log_dir / f"{self.prefix}-{moment.strftime('%Y-%m-%d')}.log"

    def emit(self, record: logging.LogRecord) -> None:
        target = os.path.abspath(self.path_for(self.clock()))
        if target != self.baseFilename:
            if self.stream is not None:
                self.stream.close()
                self.stream = None
            self.baseFilename = target
        super().emit(record)


def configure_logging(level: str, log_dir: str) -> None:
    formatter = logging.Formatter(LOG_FORMAT)
    app_file = DailyFileHandler(log_dir, "app")
    app_file.setFormatter(formatter)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
            app_file,
        ]
    )

    access_logger = logging.getLogger(ACCESS_LOGGER)
    if not any(isinstance(h, DailyFileHandler) for h in access_logger.handlers):
        access_file = DailyFileHandler(log_dir, "access")
        access_file.setFormatter(formatter)
        access_logger.addHandler(access_file)
