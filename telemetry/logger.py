from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


def _now_iso() -> str:
    # ISO-ish without importing datetime (fast + good enough for logs)
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime())


@dataclass
class TelemetryLogger:
    """
    JSONL journal of ledger and wizard events.

    One JSON object per line: ledger_apply / ledger_revert with the source
    label and the bonuses, wizard_step, hp_roll, finalize. Does nothing until
    init() gives it a path.
    """
    path: Optional[Path] = None
    enabled: bool = True
    flush_each_write: bool = False
    session: str = ""
    _events_written: int = 0
    _started_at: float = field(default_factory=time.time)

    def init(self, path: Path, session: str = "") -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Touch file (don’t overwrite)
        self.path.touch(exist_ok=True)
        self.session = session
        self.log("telemetry_init", file=str(self.path))

    def close(self) -> None:
        self.path = None

    def log(self, event: str, **fields: Any) -> None:
        if not self.enabled or self.path is None:
            return

        row: Dict[str, Any] = {
            "t": time.time(),
            "ts": _now_iso(),
            "event": event,
            **fields,
        }
        if self.session:
            row["session"] = self.session

        try:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(row, ensure_ascii=False, default=str) + "\n")
                if self.flush_each_write:
                    f.flush()
            self._events_written += 1
        except OSError:
            # Telemetry must never break the builder.
            return

    @property
    def events_written(self) -> int:
        return self._events_written

    def read_events(self) -> List[Dict[str, Any]]:
        if self.path is None or not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]


# global singleton (easy import everywhere)
telemetry = TelemetryLogger()
