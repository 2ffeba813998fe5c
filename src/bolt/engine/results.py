"""
Bolt Result Classes

Data structures for task outcomes and run statistics.
"""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TaskStatus(Enum):
    """Status of a task execution."""
    OK = "ok"
    CHANGED = "changed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class TaskResult:
    """Outcome of one task; folded into RunStats and then discarded."""

    status: TaskStatus
    changed: bool = False
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.status == TaskStatus.FAILED

    @property
    def ok(self) -> bool:
        """Check if the task succeeded (ok or changed)."""
        return self.status in (TaskStatus.OK, TaskStatus.CHANGED)


@dataclass
class RunStats:
    """Aggregate counters for a playbook run."""

    plays: int = 0
    tasks: int = 0
    ok: int = 0
    changed: int = 0
    failed: int = 0
    skipped: int = 0
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    def record(self, status: TaskStatus) -> None:
        """Record a task result status."""
        if status == TaskStatus.OK:
            self.ok += 1
        elif status == TaskStatus.CHANGED:
            self.changed += 1
        elif status == TaskStatus.FAILED:
            self.failed += 1
        elif status == TaskStatus.SKIPPED:
            self.skipped += 1

    def finish(self) -> None:
        self.end_time = time.time()

    @property
    def duration(self) -> float:
        """Elapsed seconds (up to now if the run is still going)."""
        end = self.end_time if self.end_time is not None else time.time()
        return max(0.0, end - self.start_time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "plays": self.plays,
            "tasks": self.tasks,
            "ok": self.ok,
            "changed": self.changed,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration": round(self.duration, 3),
        }


@dataclass
class RunResult:
    """Result of executing an entire playbook."""

    playbook_path: Optional[str]
    stats: RunStats = field(default_factory=RunStats)
    success: bool = True
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "playbook": self.playbook_path,
            "success": self.success,
            "errors": list(self.errors),
            "stats": self.stats.to_dict(),
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @property
    def exit_code(self) -> int:
        """Get appropriate exit code."""
        return 0 if self.success else 2
