"""Configuration for runtimes and conversion registries."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

# Same ceiling as LUAI_MAXSTACK in the reference runtime.
DEFAULT_MAX_STACK = 1_000_000


@dataclass(frozen=True)
class MarshalConfig:
    """Settings shared by a ``State`` and the descriptors that use it."""

    string_encoding: str = "utf-8"
    max_stack: int = DEFAULT_MAX_STACK
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.max_stack < 1:
            raise ValueError(f"max_stack must be positive, got {self.max_stack}")
        "".encode(self.string_encoding)  # raises LookupError for unknown codecs

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MarshalConfig":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: Path | str) -> MarshalConfig:
    """Load a ``MarshalConfig`` from a YAML or JSON file.

    An empty document yields the defaults.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config not found: {config_path}")
    with config_path.open("r", encoding="utf-8") as fp:
        if config_path.suffix == ".json":
            data = json.load(fp)
        else:
            import yaml

            data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config root must be a mapping: {config_path}")
    return MarshalConfig.from_dict(data)


_default_config: Optional[MarshalConfig] = None


def get_default_config() -> MarshalConfig:
    """Get the process-wide default configuration."""
    global _default_config
    if _default_config is None:
        _default_config = MarshalConfig()
    return _default_config
