from .applier import PatchApplier, apply_patch, locate_hunk, split_lines
from .models import FilePatch, Hunk, HunkLine, PatchReport, Reject
from .parser import parse_patch

__all__ = [
    "FilePatch",
    "Hunk",
    "HunkLine",
    "PatchApplier",
    "PatchReport",
    "Reject",
    "apply_patch",
    "locate_hunk",
    "parse_patch",
    "split_lines",
]
