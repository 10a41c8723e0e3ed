"""State point contracts shared by the writer and the reader."""

from __future__ import annotations

from dataclasses import dataclass


# Bump whenever the positional layout changes; the format is not self-describing.
REVISION_STATEPOINT = 1

VERSION_MAJOR = 0
VERSION_MINOR = 4
VERSION_RELEASE = 2
VERSION: tuple[int, int, int] = (VERSION_MAJOR, VERSION_MINOR, VERSION_RELEASE)


@dataclass(frozen=True)
class StatePointHeader:
    """Leading fields of every state point file."""

    revision: int = REVISION_STATEPOINT
    version: tuple[int, int, int] = VERSION

    @property
    def version_string(self) -> str:
        return ".".join(str(part) for part in self.version)


def state_point_filename(batch: int) -> str:
    """Return the file name a state point for ``batch`` is written under."""
    return f"restart.{int(batch)}.binary"
