import pytest

from reflex_virtual_grid.errors import ConfigurationError
from reflex_virtual_grid.models import LoadStatus, ViewportState
from reflex_virtual_grid.sentinel import VisibilitySentinel


def _sentinel(calls, **kwargs):
    return VisibilitySentinel(lambda: calls.append(1), **kwargs)


def test_marker_sits_before_the_last_loaded_row():
    sentinel = _sentinel([])
    assert sentinel.sentinel_index(20) == 18
    assert sentinel.sentinel_index(0) == 0
    assert _sentinel([], lead_rows=5).sentinel_index(20) == 14


def test_fires_when_marker_enters_threshold_region():
    calls = []
    sentinel = _sentinel(calls, load_threshold=300)
    # marker at row 18 -> 810px; region bottom 600 + 300
    viewport = ViewportState(scroll_offset=0, container_height=600, row_height=45)
    assert sentinel.probe(viewport, 20, LoadStatus.HAS_MORE) is True
    assert calls == [1]


def test_does_not_fire_far_from_the_end():
    calls = []
    sentinel = _sentinel(calls, load_threshold=100)
    viewport = ViewportState(scroll_offset=0, container_height=450, row_height=45)
    assert sentinel.probe(viewport, 200, LoadStatus.HAS_MORE) is False
    assert calls == []


@pytest.mark.parametrize(
    "status",
    [
        LoadStatus.IDLE,
        LoadStatus.LOADING_INITIAL,
        LoadStatus.LOADING_MORE,
        LoadStatus.EXHAUSTED,
        LoadStatus.ERROR,
    ],
)
def test_inert_unless_more_rows_are_available(status):
    calls = []
    sentinel = _sentinel(calls)
    viewport = ViewportState(scroll_offset=0, container_height=450, row_height=45)
    assert sentinel.probe(viewport, 5, status) is False
    assert calls == []


def test_invalid_setup_is_rejected():
    with pytest.raises(ConfigurationError):
        _sentinel([], load_threshold=-1)
    with pytest.raises(ConfigurationError):
        _sentinel([], lead_rows=0)
    sentinel = _sentinel([])
    with pytest.raises(ConfigurationError):
        sentinel.is_visible(ViewportState(0, 450, 0), 10)
