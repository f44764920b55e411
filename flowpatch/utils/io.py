# flowpatch/utils/io.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

import yaml

# -------- Path helpers --------
PathLike = Union[str, Path]


def to_path(p: PathLike) -> Path:
    """Convert string-like to pathlib.Path."""
    return p if isinstance(p, Path) else Path(p)


def ensure_parent(path: PathLike) -> Path:
    """Ensure parent directory exists for a file path."""
    p = to_path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


def fixed_output_path(path: PathLike, suffix: str = " (Fixed)") -> Path:
    """
    Derive the default output path for a patched workflow:
      "Lead Gen System (4).json" -> "Lead Gen System (4) (Fixed).json"
    """
    p = to_path(path)
    return p.with_name(f"{p.stem}{suffix}{p.suffix}")


# -------- Text / JSON / YAML --------
def read_json(path: PathLike) -> Any:
    """Load JSON file with UTF-8."""
    with to_path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def dump_json(data: Any, indent: int = 2) -> str:
    """Serialize like an n8n export: pretty, non-ASCII kept, trailing newline."""
    return json.dumps(data, ensure_ascii=False, indent=indent) + "\n"


def write_json(path: PathLike, data: Any, indent: int = 2) -> Path:
    """Write JSON atomically, pretty-formatted."""
    p = ensure_parent(path)
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(dump_json(data, indent=indent), encoding="utf-8")
    tmp.replace(p)
    return p


def read_yaml(path: PathLike) -> Any:
    """Load YAML (safe loader)."""
    with to_path(path).open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


# -------- Generic loader --------
def load_any(path: PathLike) -> Any:
    """
    Load data by extension:
      - .json -> JSON
      - .yaml/.yml -> YAML
    """
    p = to_path(path)
    suf = p.suffix.lower()
    if suf == ".json":
        return read_json(p)
    if suf in (".yaml", ".yml"):
        return read_yaml(p)
    raise ValueError(f"Unsupported extension: {suf} for {p}")
