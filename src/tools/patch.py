"""
src/tools/patch.py — apply model-written diffs to an in-memory text buffer

Provides:
- apply_patch(original_lines, diff_lines): forgiving single-pass line merge
- apply_patch_strict(original_lines, diff_lines): hunk-aware, verifying variant
- patch_text(original, diff, strict=False): string in, string out

Key ideas explained:

1) Forgiving mode (default)
   Models rarely emit exact unified diffs. Line offsets drift, headers get
   mangled, context lines get dropped. The forgiving patcher ignores hunk
   headers entirely and walks one cursor through the original:
     "+x"  emit x, cursor stays         (insertion)
     "-x"  cursor += 1, emit nothing    (deletion)
     " x"  emit x, cursor += 1          (context, NOT verified)
     other emit original[cursor], cursor += 1
   "@@", "diff", "---" and "+++" lines are no-ops. Whatever is left of the
   original after the diff is appended unchanged. Multi-hunk diffs are treated
   as one continuous edit stream, so hunks separated by a gap misapply.

2) Strict mode (opt-in)
   Honours "@@ -a,b +c,d @@" headers, copies the untouched gap before each
   hunk and checks every context/deletion line against the original. Any
   mismatch raises PatchApplicationError instead of producing a guess.
"""


import re
from typing import List, Sequence

from orchestrator.errors import PatchApplicationError


_HUNK_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


def _is_header(line: str) -> bool:

    return line.startswith(("@@", "diff", "---", "+++"))


# --- Forgiving -----------------------------------------------------------------
def apply_patch(original_lines: Sequence[str], diff_lines: Sequence[str]) -> List[str]:
    """
    Merge `diff_lines` into `original_lines` with a single advancing cursor.

    Never fails: malformed diffs produce a best-effort result. Inputs are not
    modified; a new list is returned.
    """

    result: List[str] = []
    i = 0

    for line in diff_lines:
        if line.startswith("+") and not line.startswith("+++"):
            result.append(line[1:])
        elif line.startswith("-") and not line.startswith("---"):
            i += 1
        elif line.startswith(" "):
            result.append(line[1:])
            i += 1
        elif not _is_header(line):
            # Pass-through of the original line at the cursor
            if i < len(original_lines):
                result.append(original_lines[i])
                i += 1

    result.extend(original_lines[i:])

    return result


# --- Strict ---------------------------------------------------------------------
def apply_patch_strict(original_lines: Sequence[str], diff_lines: Sequence[str]) -> List[str]:
    """
    Hunk-aware patch application.

    Each hunk header moves the cursor to its declared source line; lines
    before it are copied untouched. Context and deletion lines must match the
    original exactly.

    Raises:
        PatchApplicationError: on overlapping/out-of-order hunks, context or
            deletion mismatches, or stray lines outside any hunk.
    """

    result: List[str] = []
    i = 0
    in_hunk = False
    diff_lines = list(diff_lines)

    # A diff ending in "\n" splits into a trailing empty string
    while diff_lines and diff_lines[-1] == "":
        diff_lines.pop()

    for n, line in enumerate(diff_lines, start=1):
        m = _HUNK_RE.match(line)

        if m:
            start = max(int(m.group(1)) - 1, 0)
            # "-0,0" marks an insertion into an empty file
            if m.group(2) == "0":
                start = int(m.group(1))
            if start < i:
                raise PatchApplicationError(f"diff line {n}: hunk starts at {start + 1}, before cursor {i + 1}")
            if start > len(original_lines):
                raise PatchApplicationError(f"diff line {n}: hunk starts past end of file ({len(original_lines)} lines)")
            result.extend(original_lines[i:start])
            i = start
            in_hunk = True
            continue

        if line.startswith(("diff", "---", "+++", "index ")) and not in_hunk:
            continue
        if line == "\\ No newline at end of file":
            continue
        if not in_hunk:
            if line.strip():
                raise PatchApplicationError(f"diff line {n}: content outside of a hunk: {line!r}")
            continue

        if line.startswith("diff "):
            # Next file section; a single-buffer patch has nothing more to apply
            break
        elif line.startswith("+"):
            result.append(line[1:])
        elif line.startswith("-") or line.startswith(" ") or line == "":
            expected = line[1:]
            actual = original_lines[i] if i < len(original_lines) else None
            if actual != expected:
                raise PatchApplicationError(
                    f"diff line {n}: expected {expected!r} at line {i + 1}, found {actual!r}"
                )
            if not line.startswith("-"):
                result.append(actual)
            i += 1
        else:
            raise PatchApplicationError(f"diff line {n}: unrecognised line inside hunk: {line!r}")

    result.extend(original_lines[i:])

    return result


def patch_text(original: str, diff: str, *, strict: bool = False) -> str:
    """Apply `diff` to `original` text. Both are split on newlines; the result is joined with newlines."""

    fn = apply_patch_strict if strict else apply_patch

    return "\n".join(fn(original.split("\n"), diff.split("\n")))
