"""Path resolution for splitbill state and configuration.

All files live under a single state root: ``$SPLITBILL_HOME`` when set, otherwise
``.splitbill`` in the current working directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _get_state_root() -> Path:
    env_root = os.environ.get("SPLITBILL_HOME", "").strip()
    if env_root:
        return Path(env_root).expanduser()
    return Path.cwd() / ".splitbill"


@dataclass
class ProjectPaths:
    """Container for all splitbill paths, computed from one root."""

    root: Path = field(default_factory=_get_state_root)

    def __post_init__(self) -> None:
        self.root = self.root.resolve()

    @property
    def config_file(self) -> Path:
        """Configuration TOML; ``SPLITBILL_CONFIG`` overrides the location."""
        env_config = os.environ.get("SPLITBILL_CONFIG", "").strip()
        if env_config:
            return Path(env_config).expanduser()
        return self.root / "splitbill.toml"

    @property
    def state(self) -> Path:
        """Persisted bill state (one JSON file per key)."""
        return self.root / "state"

    def ensure_directories(self) -> None:
        self.state.mkdir(parents=True, exist_ok=True)


_paths: ProjectPaths | None = None


def get_paths() -> ProjectPaths:
    """Get the process-wide ProjectPaths instance."""
    global _paths
    if _paths is None:
        _paths = ProjectPaths()
    return _paths


def reset_paths() -> None:
    """Forget the cached instance so environment changes take effect (tests)."""
    global _paths
    _paths = None
