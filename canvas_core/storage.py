"""
Canvas state persistence.

The whole document is one JSON record ``{elements, selected_ids, viewport}``.
A missing or empty file means "no saved state"; a corrupt one is logged,
removed and likewise treated as no saved state, so loading never fails.
"""

import json
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError

from .config import get_settings
from .elements import CanvasState
from .errors import StorageCorruption

logger = structlog.get_logger(__name__)


def _resolve(path: Optional[str | Path]) -> Path:
    return Path(path).expanduser() if path else get_settings().storage_path


def save_canvas_state(state: CanvasState, path: Optional[str | Path] = None) -> Path:
    """Write the state as JSON, creating parent directories."""
    path = _resolve(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(state.to_json_dict(), f, indent=2)
    logger.debug("saved canvas state", path=str(path), elements=len(state.elements))
    return path


def _parse_state(text: str) -> CanvasState:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise StorageCorruption("Canvas state is not valid JSON", {"error": str(e)}) from e

    if not isinstance(data, dict) or not isinstance(data.get("elements"), list):
        raise StorageCorruption("Canvas state has no element list")

    try:
        return CanvasState.model_validate(data)
    except ValidationError as e:
        raise StorageCorruption("Canvas state failed validation",
                                {"errors": e.error_count()}) from e


def load_canvas_state(path: Optional[str | Path] = None) -> Optional[CanvasState]:
    """
    Load a saved state.

    Returns:
        The state, or None when nothing usable is stored (corrupt files are deleted)
    """
    path = _resolve(path)
    if not path.exists():
        return None

    text = path.read_text()
    if not text.strip():
        return None

    try:
        state = _parse_state(text)
    except StorageCorruption as e:
        logger.warning("discarding corrupt canvas state", path=str(path), error=str(e))
        path.unlink(missing_ok=True)
        return None

    logger.debug("loaded canvas state", path=str(path), elements=len(state.elements))
    return state


def clear_canvas_state(path: Optional[str | Path] = None) -> bool:
    """Remove the saved state. Returns True when a file was removed."""
    path = _resolve(path)
    if not path.exists():
        return False
    path.unlink()
    return True
