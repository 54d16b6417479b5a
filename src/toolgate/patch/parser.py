from __future__ import annotations

import re

from .models import ADD, CONTEXT, DELETE, DEV_NULL, NO_NEWLINE, FilePatch, Hunk, HunkLine, Reject

# Mail signature separator; some mailers strip the trailing space.
SIGNATURES = ("-- ", "--")
_HUNK_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
# "2024-01-31 12:00:00.000000000 +0100" style trailers written by diff -u
_TIMESTAMP_RE = re.compile(r"\s+\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:\s*[+-]\d{4})?$")


def clean_path(raw: str) -> str:
    """Turn the text after ``--- ``/``+++ `` into a usable path."""
    s = raw.strip()
    tab = s.find("\t")
    if tab >= 0:
        s = s[:tab]
    s = _TIMESTAMP_RE.sub("", s).strip()
    if len(s) >= 2 and s[0] == '"' and s[-1] == '"':
        s = s[1:-1]
    if s == DEV_NULL:
        return s
    if s.startswith("a/") or s.startswith("b/"):
        s = s[2:]
    return s


class PatchParser:
    def __init__(self, text: str):
        lines = text.replace("\r\n", "\n").split("\n")
        # A patch that ends with a newline must not grow an empty context line.
        if lines and lines[-1] == "":
            lines.pop()
        self._lines = lines
        self._i = 0
        self.errors: list[Reject] = []

    def _is_file_header(self, i: int) -> bool:
        return (
            i + 1 < len(self._lines)
            and self._lines[i].startswith("--- ")
            and self._lines[i + 1].startswith("+++ ")
        )

    def parse(self) -> list[FilePatch]:
        files: list[FilePatch] = []
        lines = self._lines
        n = len(lines)

        while self._i < n:
            # Skip noise (diff --git, index, prose) until a '--- ' line.
            if not lines[self._i].startswith("--- "):
                self._i += 1
                continue

            old_path = clean_path(lines[self._i][4:])
            self._i += 1
            if self._i >= n or not lines[self._i].startswith("+++ "):
                self.errors.append(Reject("parse", f"expected +++ after --- {old_path}"))
                continue
            new_path = clean_path(lines[self._i][4:])
            self._i += 1

            fp = FilePatch(old_path=old_path, new_path=new_path)
            ok = True
            while self._i < n and not self._is_file_header(self._i):
                if lines[self._i].startswith("@@"):
                    hunk = self._parse_hunk(fp)
                    if hunk is None:
                        ok = False
                        break
                    fp.hunks.append(hunk)
                else:
                    self._i += 1

            if not ok:
                # Drop this file and resume at the next file header.
                while self._i < n and not self._is_file_header(self._i):
                    self._i += 1
                continue
            if not fp.hunks:
                self.errors.append(Reject("parse", "no hunks", path=fp.display_path))
                continue
            files.append(fp)

        return files

    def _parse_hunk(self, fp: FilePatch) -> Hunk | None:
        lines = self._lines
        header = lines[self._i]
        m = _HUNK_RE.match(header)
        if m is None:
            self.errors.append(Reject("parse", f"bad hunk header: {header}", path=fp.display_path))
            self._i += 1
            return None
        self._i += 1

        old_start, old_count, new_start, new_count = (
            int(m.group(1)),
            int(m.group(2)) if m.group(2) is not None else 1,
            int(m.group(3)),
            int(m.group(4)) if m.group(4) is not None else 1,
        )
        hunk = Hunk(header=header, old_start=old_start, old_count=old_count, new_start=new_start, new_count=new_count)

        old_seen = new_seen = 0
        while self._i < len(lines):
            line = lines[self._i]
            if line.startswith("@@") or self._is_file_header(self._i):
                break
            satisfied = old_seen >= old_count and new_seen >= new_count
            # git format-patch ends the mail with a "-- " signature separator.
            if satisfied and line in SIGNATURES:
                break
            if line == "":
                # Editors strip the lone space of empty context lines.
                if satisfied:
                    break
                hl = HunkLine(CONTEXT, "")
            elif line[0] in (CONTEXT, DELETE, ADD):
                hl = HunkLine(line[0], line[1:])
            elif line[0] == NO_NEWLINE:
                hl = HunkLine(NO_NEWLINE, line)
            elif satisfied:
                break
            else:
                hl = HunkLine(CONTEXT, line)

            hunk.lines.append(hl)
            if hl.prefix in (CONTEXT, DELETE):
                old_seen += 1
            if hl.prefix in (CONTEXT, ADD):
                new_seen += 1
            self._i += 1

        return hunk


def parse_patch(text: str) -> tuple[list[FilePatch], list[Reject]]:
    parser = PatchParser(text)
    files = parser.parse()
    return files, parser.errors
