"""Trigger grammar: the command embedded in a file's final extension.

``report.!pdf`` asks for a non-destructive conversion (or restore) to
``report.pdf``; ``report.!!pdf`` asks for the same without first saving
the current state to version history.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from . import conventions


@dataclass(frozen=True)
class Trigger:
    target_ext: str
    destructive: bool


def parse_trigger(raw_ext: str) -> Trigger | None:
    """Parse a raw extension (without the dot) into a Trigger.

    Returns None for anything that is not a command: no bang prefix, or a
    bare ``!``/``!!`` with nothing after it. Matching is case-insensitive
    and the target extension is returned lower-cased. Only the prefix
    itself is removed, so ``!!!pdf`` targets ``!pdf``.
    """
    lower = raw_ext.lower()
    if lower.startswith(conventions.DESTRUCTIVE_PREFIX):
        target = lower[len(conventions.DESTRUCTIVE_PREFIX) :]
        return Trigger(target, destructive=True) if target else None
    if lower.startswith(conventions.TRIGGER_PREFIX):
        target = lower[len(conventions.TRIGGER_PREFIX) :]
        return Trigger(target, destructive=False) if target else None
    return None


def raw_extension(path: Path) -> str:
    """Text after the final dot of the file name, or "" if there is none."""
    name = path.name
    if name.startswith(".") and name.count(".") == 1:
        return ""
    _, dot, ext = name.rpartition(".")
    return ext if dot else ""


def trigger_from_path(path: Path) -> Trigger | None:
    return parse_trigger(raw_extension(path))


def clean_path(path: Path, trigger: Trigger) -> Path:
    """Replace the trigger extension with the target: ``a.!pdf`` -> ``a.pdf``."""
    stem, _, _ = path.name.rpartition(".")
    return path.with_name(f"{stem}.{trigger.target_ext}")
