import pytest

from canvas_core.elements import ArrowBinding, Point, ShapeElement
from canvas_core.store import ElementStore


def make_rect(element_id, x=0, y=0, width=100, height=50, **kwargs):
    return ShapeElement(id=element_id, type="rectangle", x=x, y=y,
                        width=width, height=height, **kwargs)


def make_arrow(element_id, start, end, start_binding=None, end_binding=None, **kwargs):
    """Arrow whose box is exactly spanned by two absolute points."""
    min_x, min_y = min(start[0], end[0]), min(start[1], end[1])
    return ShapeElement(
        id=element_id,
        type="arrow",
        x=min_x,
        y=min_y,
        width=max(abs(end[0] - start[0]), 1),
        height=max(abs(end[1] - start[1]), 1),
        arrow_start=Point(x=start[0] - min_x, y=start[1] - min_y),
        arrow_end=Point(x=end[0] - min_x, y=end[1] - min_y),
        start_binding=ArrowBinding(element_id=start_binding[0], position=start_binding[1])
        if start_binding else None,
        end_binding=ArrowBinding(element_id=end_binding[0], position=end_binding[1])
        if end_binding else None,
        **kwargs,
    )


@pytest.fixture
def store():
    return ElementStore(history_limit=50)


@pytest.fixture
def two_rects():
    return [make_rect("a", 0, 0, 100, 50), make_rect("b", 300, 200, 80, 40)]
