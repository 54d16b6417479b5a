from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

DEV_NULL = "/dev/null"

CONTEXT = " "
DELETE = "-"
ADD = "+"
NO_NEWLINE = "\\"


@dataclass(frozen=True)
class HunkLine:
    prefix: str   # " " | "-" | "+" | "\\"
    text: str

    @property
    def consumes_old(self) -> bool:
        return self.prefix in (CONTEXT, DELETE)


@dataclass
class Hunk:
    header: str
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: list[HunkLine] = field(default_factory=list)

    @property
    def nominal_start(self) -> int:
        """Zero-based index the header claims the hunk starts at."""
        return max(0, self.old_start - 1)

    def anchor(self, size: int = 3) -> list[str]:
        """Leading context/delete lines used to relocate a drifted hunk."""
        out: list[str] = []
        for hl in self.lines:
            if hl.consumes_old:
                out.append(hl.text)
                if len(out) >= size:
                    break
        return out


@dataclass
class FilePatch:
    old_path: str | None
    new_path: str | None
    hunks: list[Hunk] = field(default_factory=list)

    @property
    def is_creation(self) -> bool:
        return self.old_path == DEV_NULL

    @property
    def is_deletion(self) -> bool:
        return self.new_path == DEV_NULL

    @property
    def display_path(self) -> str:
        if self.new_path and self.new_path != DEV_NULL:
            return self.new_path
        if self.old_path and self.old_path != DEV_NULL:
            return self.old_path
        return "<unknown>"


RejectKind = Literal["parse", "reject"]


@dataclass(frozen=True)
class Reject:
    kind: RejectKind
    reason: str
    path: str | None = None
    header: str | None = None

    def render(self) -> str:
        label = "Parse" if self.kind == "parse" else "Reject"
        where = ""
        if self.path:
            where = f" in {self.path}"
            if self.header:
                where += f" at {self.header}"
        return f"{label}: {self.reason}{where}"


@dataclass
class PatchReport:
    applied: bool
    rejects: list[Reject] = field(default_factory=list)
    written: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def reject_log(self) -> str:
        return "".join(r.render() + "\n" for r in self.rejects)
