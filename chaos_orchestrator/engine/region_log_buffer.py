"""
Region Log Buffer - Buffers logs per region during concurrent runs
"""
import logging
import threading
from typing import List, Tuple

logger = logging.getLogger(__name__)

_flush_lock = threading.Lock()

_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
}


class RegionLogBuffer:
    """Buffers logs for a single region and flushes them as one block"""

    def __init__(self, region: str):
        self.region = region
        self.buffer: List[Tuple[str, str]] = []  # (level, message)
        self._lock = threading.Lock()

    def _append(self, level: str, msg: str):
        with self._lock:
            self.buffer.append((level, msg))

    def info(self, msg: str):
        self._append('INFO', msg)

    def debug(self, msg: str):
        self._append('DEBUG', msg)

    def warning(self, msg: str):
        self._append('WARNING', msg)

    def error(self, msg: str):
        self._append('ERROR', msg)

    def flush(self):
        """Write all buffered lines to the module logger without interleaving other regions"""
        with self._lock:
            entries = list(self.buffer)
            self.buffer.clear()

        with _flush_lock:
            if not entries:
                return

            logger.info(f"=== REGION {self.region} ===")
            for level, msg in entries:
                logger.log(_LEVELS[level], msg)
            logger.info(f"=== END REGION {self.region} ===")
