from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List


def _manifests_dir() -> Path:
    # archonos_builder/lib/manifests.py -> archonos_builder/manifests
    return Path(__file__).resolve().parents[1] / "manifests"


def load_yaml_rel(rel_path: str) -> Dict[str, Any]:
    """Load a YAML file shipped in archonos_builder/manifests."""
    try:
        import yaml  # type: ignore
    except Exception as e:  # pragma: no cover
        raise RuntimeError("PyYAML required to load manifests") from e

    p = _manifests_dir() / rel_path.lstrip("/")
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Manifest must be a mapping/dict: {p}")
    return data


def load_base_packages() -> List[str]:
    data = load_yaml_rel("packages.yaml")
    out: List[str] = []
    for group in (data.get("groups") or {}).values():
        for pkg in group or []:
            if pkg not in out:
                out.append(str(pkg))
    return out
