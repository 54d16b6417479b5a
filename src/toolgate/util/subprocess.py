from __future__ import annotations
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Sequence, Optional

@dataclass
class CmdResult:
    returncode: int
    stdout: str
    stderr: str
    cancelled: bool = False

def run_cmd(
    cmd: Sequence[str],
    cwd: str,
    timeout: Optional[float] = 120,
    cancel_event: Optional[threading.Event] = None,
    poll_s: float = 0.1,
) -> CmdResult:
    """Run a command, killing it on timeout or when cancel_event is set."""
    p = subprocess.Popen(
        list(cmd),
        cwd=cwd,
        text=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        shell=False,
    )
    deadline = (time.monotonic() + timeout) if timeout is not None else None
    while True:
        try:
            out, err = p.communicate(timeout=poll_s)
            return CmdResult(p.returncode, out, err)
        except subprocess.TimeoutExpired:
            pass
        cancelled = cancel_event is not None and cancel_event.is_set()
        if cancelled or (deadline is not None and time.monotonic() >= deadline):
            p.kill()
            out, err = p.communicate()
            if not cancelled:
                raise subprocess.TimeoutExpired(list(cmd), timeout or 0, output=out, stderr=err)
            return CmdResult(p.returncode, out, err, cancelled=True)
