from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .models import ADD, CONTEXT, DELETE, FilePatch, Hunk, PatchReport, Reject
from .parser import parse_patch

FUZZ_WINDOW = 50
ANCHOR_SIZE = 3


def split_lines(text: str) -> tuple[list[str], str, bool]:
    """Split into lines without terminators.

    Returns (lines, eol, had_trailing_eol); eol is CRLF if any CRLF is present.
    """
    eol = "\r\n" if "\r\n" in text else "\n"
    if text == "":
        return [], eol, False
    norm = text.replace("\r\n", "\n")
    lines = norm.split("\n")
    trailing = norm.endswith("\n")
    if trailing:
        lines.pop()
    return lines, eol, trailing


def _matches_at(lines: list[str], anchor: list[str], start: int) -> bool:
    if start < 0 or start + len(anchor) > len(lines):
        return False
    return lines[start:start + len(anchor)] == anchor


def nominal_start(hunk: Hunk) -> int:
    # "-N,0" means "insert after line N" (GNU diff), so the zero-based start is
    # N itself rather than N - 1. Other hunks use Hunk.nominal_start.
    if hunk.old_count == 0 and hunk.old_start > 0:
        return hunk.old_start
    return hunk.nominal_start


def locate_hunk(lines: list[str], hunk: Hunk, window: int = FUZZ_WINDOW) -> int | None:
    """Find where a hunk starts in ``lines``.

    Tries the header position first, then grows outward one line at a time
    (above, then below) up to ``window`` lines. The nearest exact match of
    the anchor lines wins.
    """
    start = nominal_start(hunk)
    anchor = hunk.anchor(ANCHOR_SIZE)
    if not anchor:
        return start if start <= len(lines) else None
    if _matches_at(lines, anchor, start):
        return start
    for offset in range(1, window + 1):
        for cand in (start - offset, start + offset):
            if _matches_at(lines, anchor, cand):
                return cand
    return None


def apply_hunks(lines: list[str], fp: FilePatch, window: int = FUZZ_WINDOW) -> tuple[list[str] | None, Reject | None]:
    """Replay every hunk of one file in order. All-or-nothing per file."""
    out: list[str] = []
    cursor = 0
    path = fp.display_path

    for hunk in fp.hunks:
        start = locate_hunk(lines, hunk, window)
        if start is None:
            if hunk.anchor(ANCHOR_SIZE):
                reason = f"context mismatch: anchor lines not found within {window} lines of line {hunk.old_start}"
            else:
                reason = f"hunk starts at line {hunk.old_start} but file has {len(lines)} lines"
            return None, Reject("reject", reason, path=path, header=hunk.header)
        if start < cursor:
            return None, Reject(
                "reject",
                f"overlap before hunk (resolved line {start + 1} is before line {cursor + 1})",
                path=path,
                header=hunk.header,
            )

        out.extend(lines[cursor:start])
        cursor = start

        for hl in hunk.lines:
            if hl.prefix == CONTEXT or hl.prefix == DELETE:
                if cursor >= len(lines) or lines[cursor] != hl.text:
                    found = repr(lines[cursor]) if cursor < len(lines) else "end of file"
                    kind = "context" if hl.prefix == CONTEXT else "delete"
                    return None, Reject(
                        "reject",
                        f"{kind} mismatch at line {cursor + 1}: expected {hl.text!r}, found {found}",
                        path=path,
                        header=hunk.header,
                    )
                if hl.prefix == CONTEXT:
                    out.append(lines[cursor])
                cursor += 1
            elif hl.prefix == ADD:
                out.append(hl.text)
            # "\ No newline at end of file" markers carry no content.

    out.extend(lines[cursor:])
    return out, None


@dataclass
class _Planned:
    fp: FilePatch
    target: Path
    text: str | None  # None removes the file


class PatchApplier:
    """Applies unified-diff text to files under ``root``.

    By default each file is written as soon as all of its hunks apply, even if
    a later file fails. With ``atomic=True`` nothing is written unless every
    file applies and the patch parsed cleanly.
    """

    def __init__(self, root: str | Path, *, atomic: bool = False, window: int = FUZZ_WINDOW):
        self.root = Path(root)
        self.atomic = atomic
        self.window = window

    def resolve(self, path: str) -> Path:
        p = Path(path)
        if p.is_absolute():
            return p
        return self.root / p

    def _plan(self, fp: FilePatch, report: PatchReport) -> _Planned | None:
        rel = fp.old_path if fp.is_deletion else (fp.new_path or fp.old_path)
        if not rel:
            report.rejects.append(Reject("reject", "empty target path in patch", path=fp.display_path))
            return None
        target = self.resolve(rel)

        existed = target.exists()
        if existed and fp.is_creation and target.is_file() and target.stat().st_size > 0:
            report.rejects.append(Reject("reject", "file already exists", path=fp.display_path))
            return None
        try:
            old_text = target.read_bytes().decode("utf-8") if existed else ""
        except (OSError, UnicodeDecodeError) as e:
            report.rejects.append(Reject("reject", f"cannot read file: {e}", path=fp.display_path))
            return None

        was_empty = old_text == ""
        lines, eol, trailing = split_lines(old_text)
        out, reject = apply_hunks(lines, fp, self.window)
        if reject is not None:
            report.rejects.append(reject)
            return None
        assert out is not None

        if fp.is_deletion:
            if out:
                report.rejects.append(Reject("reject", f"deletion leaves {len(out)} lines", path=fp.display_path))
                return None
            return _Planned(fp, target, None)

        text = eol.join(out)
        if out and (trailing or was_empty):
            text += eol
        return _Planned(fp, target, text)

    def _write(self, planned: _Planned, report: PatchReport) -> None:
        try:
            if planned.text is None:
                if planned.target.exists():
                    os.remove(planned.target)
            else:
                planned.target.parent.mkdir(parents=True, exist_ok=True)
                planned.target.write_bytes(planned.text.encode("utf-8"))
        except OSError as e:
            report.rejects.append(Reject("reject", f"write failed: {e}", path=planned.fp.display_path))
            report.failed.append(planned.fp.display_path)
            return
        report.written.append(planned.fp.display_path)

    def apply(self, patch_text: str) -> PatchReport:
        files, parse_errors = parse_patch(patch_text)
        report = PatchReport(applied=False, rejects=list(parse_errors))

        staged: list[_Planned] = []
        for fp in files:
            planned = self._plan(fp, report)
            if planned is None:
                report.failed.append(fp.display_path)
                continue
            if self.atomic:
                staged.append(planned)
            else:
                self._write(planned, report)

        if self.atomic and not report.failed and not report.rejects:
            for planned in staged:
                self._write(planned, report)

        report.applied = not report.failed and not report.rejects
        return report


def apply_patch(patch_text: str, root: str | Path) -> tuple[bool, str]:
    """Apply a unified diff under ``root``; returns (all_applied, reject_log)."""
    report = PatchApplier(root).apply(patch_text)
    return report.applied, report.reject_log
