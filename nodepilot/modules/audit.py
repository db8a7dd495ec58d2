"""Append-only audit trail of mutating node operations."""
import json
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Union

logger = logging.getLogger("nodepilot.audit")


class AuditLog:
    """Writes one JSON object per line for every cordon, drain, reboot and force delete.

    With no path the entries are only kept in memory, which is what the
    tests and dry runs use. Only the last max_entries are kept in memory;
    the file keeps everything.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, max_entries: int = 1000):
        self.path = Path(path).expanduser().absolute() if path else None
        self.entries: Deque[Dict[str, Any]] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def record(self, action: str, target: str, result: str, **details: Any) -> Dict[str, Any]:
        """Record a single action.

        Args:
            action: What was done (cordon, drain, reboot, ...)
            target: Node name or namespace/pod
            result: success, failed, skipped, ...
            **details: Extra JSON-serialisable fields

        Returns:
            The entry that was written
        """
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'action': action,
            'target': target,
            'result': result,
            **details,
        }
        with self._lock:
            self.entries.append(entry)
            if self.path is not None:
                self._write(entry)
        return entry

    def _write(self, entry: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'a') as f:
                f.write(json.dumps(entry, default=str) + '\n')
        except OSError as e:
            # the in-memory entry is kept; a broken audit file must not stop an operation
            logger.error(f"Failed to write audit log {self.path}: {e}")

    def tail(self, count: int = 10) -> List[Dict[str, Any]]:
        """Return the most recent in-memory entries."""
        if count <= 0:
            return []
        with self._lock:
            return list(self.entries)[-count:]
