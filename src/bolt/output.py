"""
Bolt Console Output

Play and task banners, per-task status lines and the final recap.
"""

import os
import sys
from typing import Optional, TextIO

from bolt.engine.playbook import Play
from bolt.engine.results import RunStats, TaskStatus


COLORS = {
    'ok': '\033[32m',      # Green
    'changed': '\033[33m', # Yellow
    'failed': '\033[31m',  # Red
    'skipped': '\033[36m', # Cyan
}
RESET = '\033[0m'


def color_enabled(requested: bool = True, stream: Optional[TextIO] = None) -> bool:
    """Colour is on unless disabled by flag, NO_COLOR, or a non-tty stream."""
    if not requested or os.environ.get('NO_COLOR'):
        return False
    stream = stream or sys.stdout
    isatty = getattr(stream, 'isatty', None)
    return bool(isatty and isatty())


class Reporter:
    """Writes run progress to the console."""

    def __init__(
        self,
        color: bool = True,
        stream: Optional[TextIO] = None,
        err_stream: Optional[TextIO] = None,
    ):
        self.stream = stream or sys.stdout
        self.err_stream = err_stream or sys.stderr
        self.color = color

    def _paint(self, text: str, status: str) -> str:
        if not self.color:
            return text
        return f"{COLORS.get(status, '')}{text}{RESET}"

    def _write(self, text: str = "") -> None:
        print(text, file=self.stream)

    def playbook_start(self, path: Optional[str]) -> None:
        """Print playbook header."""
        self._write(f"PLAYBOOK: {path or '<string>'}")

    def play_start(self, play: Play) -> None:
        """Print play banner."""
        self._write(f"\nPLAY [{play.display_name}] " + "*" * 50)

    def section(self, title: str) -> None:
        self._write(f"\n{title} " + "*" * 50)

    def task_start(self, name: str) -> None:
        """Print task banner."""
        self._write(f"\nTASK [{name}] " + "-" * 50)

    def task_result(self, host: str, status: TaskStatus, msg: Optional[str] = None) -> None:
        """Print result for a task."""
        label = self._paint(f"{status.value}: [{host}]", status.value)
        if msg:
            self._write(f"{label} => {msg}")
        else:
            self._write(label)

    def info(self, msg: str) -> None:
        self._write(msg)

    def warning(self, msg: str) -> None:
        """Print a warning message."""
        text = f"[WARNING]: {msg}"
        if self.color:
            text = f"\033[33m{text}{RESET}"
        print(text, file=self.err_stream)

    def error(self, msg: str) -> None:
        """Print an error message."""
        print(self._paint(msg, 'failed'), file=self.err_stream)

    def recap(self, stats: RunStats) -> None:
        """Print final recap."""
        self._write("\nRECAP " + "*" * 60)

        parts = [
            self._paint(f"ok={stats.ok}", 'ok'),
            self._paint(f"changed={stats.changed}", 'changed'),
            self._paint(f"failed={stats.failed}", 'failed') if stats.failed else f"failed={stats.failed}",
            self._paint(f"skipped={stats.skipped}", 'skipped') if stats.skipped else f"skipped={stats.skipped}",
        ]
        self._write(f"{'plays=' + str(stats.plays):12} tasks={stats.tasks:<6} : " + "  ".join(parts))
        self._write(f"duration: {stats.duration:.2f}s")


class QuietReporter(Reporter):
    """Reporter that prints nothing (library callers and tests)."""

    def __init__(self) -> None:
        super().__init__(color=False)

    def _write(self, text: str = "") -> None:
        pass

    def warning(self, msg: str) -> None:
        pass

    def error(self, msg: str) -> None:
        pass
