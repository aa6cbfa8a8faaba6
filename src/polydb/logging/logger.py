import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

_INITIALIZED = False
_ROOT = "polydb"


class TimestampRotatingFileHandler(RotatingFileHandler):
    """Size-based rotation that renames the old file with a timestamp.

    The live log always stays at the configured path (e.g. logs/polydb.log);
    rotated files become logs/polydb_20260124_153012.log. backupCount=0 keeps
    every rotated file, backupCount=N keeps the newest N.
    """

    stamp_format = "%Y%m%d_%H%M%S"

    def _live(self) -> Path:
        return Path(self.baseFilename)

    def _rotated_name(self) -> Path:
        live = self._live()
        ext = live.suffix or ".log"
        stamp = datetime.now().strftime(self.stamp_format)
        target = live.with_name(f"{live.stem}_{stamp}{ext}")
        n = 0
        while target.exists():
            n += 1
            target = live.with_name(f"{live.stem}_{stamp}_{n}{ext}")
        return target

    def _prune(self) -> None:
        if self.backupCount <= 0:
            return
        live = self._live()
        rotated = sorted(
            live.parent.glob(f"{live.stem}_*{live.suffix or '.log'}"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        for old in rotated[self.backupCount:]:
            old.unlink(missing_ok=True)

    def doRollover(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None
        if self._live().exists():
            self.rotate(self.baseFilename, str(self._rotated_name()))
        self._prune()
        if not self.delay:
            self.stream = self._open()


def init_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = "logs/polydb.log",
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 0,
) -> None:
    """Configure the polydb logger tree once per process.

    Records go to stderr (stdout is reserved for the stdio transport) and,
    unless log_file is empty, to a rotating file.
    """
    global _INITIALIZED
    if _INITIALIZED:
        return

    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            TimestampRotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )

    root = logging.getLogger(_ROOT)
    root.setLevel(level)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)
    root.propagate = False
    _INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{_ROOT}.{name}")
