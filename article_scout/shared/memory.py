"""Process tree memory readings used to gate browser-heavy work."""

import gc
from typing import Any, Dict

import psutil
import structlog

logger = structlog.get_logger(__name__)

MB = 1024 * 1024


class MemoryMonitor:
    """Reads the resident set size of the current process and its children.

    Chromium runs in separate processes spawned by the Playwright driver, so
    the children are summed in for the ceiling to cover the browser as well.
    """

    def __init__(self, process: psutil.Process = None):
        self._process = process or psutil.Process()

    def _children_rss(self) -> int:
        total = 0
        for child in self._process.children(recursive=True):
            try:
                total += child.memory_info().rss
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return total

    def current_rss_mb(self) -> int:
        """Resident set size of this process tree in whole megabytes."""
        return round((self._process.memory_info().rss + self._children_rss()) / MB)

    def details(self) -> Dict[str, Any]:
        info = self._process.memory_info()
        children = self._children_rss()
        system = psutil.virtual_memory()
        return {
            "rss_mb": round((info.rss + children) / MB),
            "process_rss_mb": round(info.rss / MB),
            "children_rss_mb": round(children / MB),
            "vms_mb": round(info.vms / MB),
            "system_used_percent": round(system.percent, 1),
        }

    def exceeds(self, limit_mb: int) -> bool:
        return self.current_rss_mb() > limit_mb

    def collect_garbage(self) -> int:
        """Force a full collection and return the number of unreachable objects found."""
        collected = gc.collect()
        logger.debug("Forced garbage collection", collected=collected)
        return collected
