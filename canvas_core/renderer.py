"""
Renderer collaborator contract.

The core never draws. A Renderer turns elements into visuals and exports
raster images; the helpers here drive one from an ElementStore and convert
any renderer exception into RendererFailure without touching the document.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, Optional

import structlog

from .errors import RendererFailure
from .geometry import Box, bounding_box

if TYPE_CHECKING:
    from .store import ElementStore

logger = structlog.get_logger(__name__)

DEFAULT_EXPORT_PADDING = 20


class Renderer(ABC):
    """Interface a drawing backend implements."""

    @abstractmethod
    async def render_element(self, element) -> None:
        """Draw an element; rendering an id again replaces its previous visual."""

    @abstractmethod
    def update_elements_transform(self, elements: list) -> None:
        """Apply position, rotation and z-order only."""

    @abstractmethod
    def update_viewport(self, x: float, y: float, scale: float) -> None:
        ...

    @abstractmethod
    async def export_selected_elements(self, ids: list[str], bounds: Box, padding: float) -> Any:
        """Capture the given elements as a raster surface."""


async def render_elements(renderer: Renderer, elements: Iterable) -> int:
    """Render every element in order. Returns the number rendered."""
    count = 0
    for element in elements:
        try:
            await renderer.render_element(element)
        except Exception as e:
            logger.error("render failed", element_id=element.id, error=str(e))
            raise RendererFailure("Failed to render element", {"element_id": element.id}) from e
        count += 1
    return count


def sync_renderer(store: "ElementStore", renderer: Renderer):
    """Push current transforms and the viewport to the renderer."""
    renderer.update_elements_transform(store.elements)
    viewport = store.viewport
    renderer.update_viewport(viewport.x, viewport.y, viewport.scale)


async def export_selection(store: "ElementStore", renderer: Renderer,
                           padding: float = DEFAULT_EXPORT_PADDING) -> Optional[Any]:
    """
    Export the selected elements through the renderer.

    Args:
        store: Source of the selection (never modified)
        renderer: Renderer performing the capture
        padding: Margin around the selection bounds

    Returns:
        Whatever the renderer produced, or None when nothing is selected

    Raises:
        RendererFailure: The renderer rejected the export
    """
    selected = store.get_selected_elements()
    if not selected:
        return None

    ids = [e.id for e in selected]
    bounds = bounding_box(selected)
    try:
        return await renderer.export_selected_elements(ids, bounds, padding)
    except Exception as e:
        logger.error("export failed", count=len(ids), error=str(e))
        raise RendererFailure("Export failed", {"count": len(ids)}) from e
