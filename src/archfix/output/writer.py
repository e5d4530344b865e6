"""Output writer: mirrored output paths + security guards.

Responsibilities:
  1. Map a source unit id (path relative to the source root) to its output
     path: same relative directory, ``<stem><suffix><ext>``.
  2. Validate the output directory: relative paths are confined to CWD.
     Path traversal (../../etc) → hard fail.
  3. Overwrite protection: if the file exists, prompt the user (--yes skips).
  4. Write atomically (temp file → rename).
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path, PurePosixPath

import typer


# ------------------------------------------------------------------
# Path mapping
# ------------------------------------------------------------------


def output_path_for(unit_id: str, output_dir: Path, suffix: str = "_refactored") -> Path:
    """Mirror *unit_id* under *output_dir* with *suffix* before the extension.

    Raises:
        ValueError: If *unit_id* would escape *output_dir*.
    """
    rel = PurePosixPath(unit_id)
    if rel.is_absolute() or ".." in rel.parts:
        raise ValueError(f"Unit id '{unit_id}' is not a relative path inside the source tree.")
    name = f"{rel.stem}{suffix}{rel.suffix}"
    return output_dir.joinpath(*rel.parent.parts, name)


# ------------------------------------------------------------------
# Path validation (path traversal prevention)
# ------------------------------------------------------------------


def validate_output_path(output: str, allowed_base: Path | None = None) -> Path:
    """Normalize and validate an output path.

    Absolute paths are accepted as-is. Relative paths are confined to
    *allowed_base* (default: CWD).

    Raises:
        ValueError: If a relative path escapes the allowed base directory.
    """
    path = Path(output)

    if path.is_absolute():
        return path.resolve()

    if allowed_base is None:
        allowed_base = Path.cwd()

    allowed_base = allowed_base.resolve()
    resolved = (allowed_base / path).resolve()

    try:
        resolved.relative_to(allowed_base)
    except ValueError:
        raise ValueError(
            f"Output path '{output}' resolves outside the allowed directory "
            f"('{allowed_base}'). Path traversal is not permitted."
        )

    return resolved


# ------------------------------------------------------------------
# Overwrite guard
# ------------------------------------------------------------------


def check_overwrite(paths: list[Path], yes: bool) -> bool:
    """Return True if we should proceed with writing, False if the user declines.

    Prompts once for all existing *paths* unless *yes* is set.
    """
    existing = [p for p in paths if p.exists()]
    if yes or not existing:
        return True

    shown = ", ".join(p.name for p in existing[:3])
    more = f" (+{len(existing) - 3} more)" if len(existing) > 3 else ""
    return typer.confirm(f"  {len(existing)} output file(s) exist: {shown}{more}\n  Overwrite?", default=False)


# ------------------------------------------------------------------
# Atomic write
# ------------------------------------------------------------------


def write_output(path: Path, content: str) -> None:
    """Write *content* to *path* atomically (temp → rename).

    Creates parent directories if needed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
