from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


# -------------------------
# Path utilities
# -------------------------
def normalize_abs_posix(path: str | Path) -> str:
    """
    Return an absolute POSIX-style path string for the given input.
    Ensures deterministic representation across platforms.
    """
    p = Path(path).resolve()
    return p.as_posix()


def layers_to_string(layers: list[int]) -> str:
    """
    Render a layer list the way the CLI accepts it, e.g. [10, 6, 1] -> '10-6-1'.
    """
    return "-".join(str(x) for x in layers)


def parse_layers(spec: str) -> list[int]:
    """
    Parse '10-6-1' into [10, 6, 1].

    Raises:
        ValueError: on empty parts, non-integers or non-positive sizes
    """
    parts = spec.strip().split("-")
    try:
        layers = [int(p) for p in parts]
    except ValueError:
        raise ValueError(f"Invalid layer spec '{spec}': expected e.g. 10-6-1")
    if len(layers) < 2 or any(x < 1 for x in layers):
        raise ValueError(
            f"Invalid layer spec '{spec}': need at least two positive sizes"
        )
    return layers


# -------------------------
# JSON utilities
# -------------------------
def canonical_json_dumps(payload: dict[str, Any]) -> str:
    """
    Deterministic JSON string for model files:
    - separators=(',', ':')
    - sort_keys=True
    - ensure_ascii=False
    """
    return json.dumps(
        payload, ensure_ascii=False, separators=(",", ":"), sort_keys=True
    )


def write_text_file(path: str | Path, text: str) -> Path:
    """
    Write text as UTF-8, creating missing parent directories.

    The text is written to a sibling temporary file and moved into place so an
    interrupted write never leaves a truncated model behind.
    """
    target = Path(path)
    if not target.parent.exists():
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Created directory %s", str(target.parent))
    tmp = target.with_name(target.name + ".tmp")
    try:
        tmp.write_text(text, encoding="utf-8")
        tmp.replace(target)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    return target
