"""Ignore-list handling for linkbackup.

The ignore file is a user-maintained list of names, separated by any
whitespace. Each entry becomes one rsync ``--exclude`` directive. Entries
are restricted to letters, digits, ``.``, ``-`` and ``_`` so that nothing in
the file can smuggle an rsync option or a path into the command line.

By default characters outside that set are stripped (``my file*.tmp``
becomes ``myfile.tmp``, ``../etc`` becomes ``..etc``) and a warning is
logged for the entry. With ``strict=True`` such entries are rejected.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List
import logging
import re

from linkbackup.logger import LOGGER_NAME


logger = logging.getLogger(f"{LOGGER_NAME}.excludes")

ALLOWED_CHARACTERS = "A-Za-z0-9._-"

_DISALLOWED = re.compile(f"[^{ALLOWED_CHARACTERS}]")
_VALID = re.compile(f"[{ALLOWED_CHARACTERS}]+")


class ExcludeError(Exception):
    """Raised when the ignore file can't be read or holds a rejected entry."""
    pass


def sanitize_pattern(raw: str) -> str:
    """Strip every character outside the allowed set."""
    return _DISALLOWED.sub("", raw)


def is_valid_pattern(value: str) -> bool:
    """Return True if ``value`` is non-empty and uses only allowed characters."""
    return _VALID.fullmatch(value) is not None


@dataclass(frozen=True)
class ExcludePattern:
    """One entry of the ignore list, after sanitization."""
    raw: str
    value: str

    @property
    def was_modified(self) -> bool:
        return self.raw != self.value

    @property
    def is_empty(self) -> bool:
        return not self.value

    @classmethod
    def parse(cls, raw: str, strict: bool = False) -> "ExcludePattern":
        """
        Turn a raw ignore entry into a pattern.

        Raises:
            ExcludeError: In strict mode, if ``raw`` is not already valid
        """
        if strict and not is_valid_pattern(raw):
            raise ExcludeError(
                f"Invalid ignore entry {raw!r}: only letters, digits, "
                f"'.', '-' and '_' are allowed"
            )
        return cls(raw=raw, value=sanitize_pattern(raw))

    def to_directive(self) -> str:
        return f"--exclude={self.value}"


def read_ignore_file(path: Path) -> List[str]:
    """
    Read raw entries from the ignore file.

    A missing file is treated as an empty list.

    Raises:
        ExcludeError: If the file exists but cannot be read
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        logger.debug(f"No ignore file at {path}, nothing excluded")
        return []
    except OSError as e:
        raise ExcludeError(f"Cannot read ignore file {path}: {e}")
    return content.split()


def parse_patterns(entries: Iterable[str], strict: bool = False) -> List[ExcludePattern]:
    """Parse raw entries, dropping any that sanitize to nothing."""
    patterns = []
    for raw in entries:
        pattern = ExcludePattern.parse(raw, strict=strict)
        if pattern.is_empty:
            logger.warning(f"Ignore entry {raw!r} has no allowed characters, skipped")
            continue
        if pattern.was_modified:
            logger.warning(f"Ignore entry {raw!r} sanitized to {pattern.value!r}")
        patterns.append(pattern)
    return patterns


def load_excludes(path: Path, strict: bool = False) -> List[ExcludePattern]:
    """Read and parse the ignore file."""
    patterns = parse_patterns(read_ignore_file(path), strict=strict)
    logger.info(f"Excluding {len(patterns)} pattern(s) from {path}")
    return patterns


def build_exclude_args(patterns: Iterable[ExcludePattern]) -> List[str]:
    """Build one ``--exclude`` directive per non-empty pattern, in order."""
    return [p.to_directive() for p in patterns if not p.is_empty]
