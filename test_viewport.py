#!/usr/bin/env python3
"""
Test viewport movement and tile range queries
"""

import math

import pytest

from tile_codec import encode_tile
from tile_coords import EARTH_RADIUS_MI, MAX_ZOOM
from viewport import DegenerateViewport, Viewport, clamp_tile_range


def _corners(v):
    return (v.x0, v.y0, v.x1, v.y1)


def test_degenerate_viewport_rejected():
    with pytest.raises(DegenerateViewport):
        Viewport(0.0, 0.0, 0.0, 1.0)
    with pytest.raises(DegenerateViewport):
        Viewport(0.5, 0.5, 0.4, 0.6)


def test_pan_proportional_to_span():
    v = Viewport(0.25, 0.25, 0.5, 0.5)
    v.pan(0.5, -1.0)
    assert _corners(v) == pytest.approx((0.375, 0.0, 0.625, 0.25))


def test_zoom_out_and_back():
    v = Viewport(0.25, 0.25, 0.5, 0.5)
    v.zoom(1.0, 0.5, 0.5)
    assert _corners(v) == pytest.approx((0.125, 0.125, 0.625, 0.625))
    v.zoom(-1.0, 0.5, 0.5)
    assert _corners(v) == pytest.approx((0.25, 0.25, 0.5, 0.5))


def test_zoom_around_corner_keeps_corner():
    v = Viewport(0.25, 0.25, 0.5, 0.5)
    v.zoom(-1.0, 0.0, 0.0)
    assert _corners(v) == pytest.approx((0.25, 0.25, 0.375, 0.375))


def test_zoom_underflow_is_rejected_and_leaves_view_intact():
    v = Viewport(0.25, 0.25, 0.5, 0.5)
    with pytest.raises(DegenerateViewport):
        v.zoom(-5000.0, 0.5, 0.5)
    assert _corners(v) == (0.25, 0.25, 0.5, 0.5)


def test_match_aspect():
    v = Viewport(0.25, 0.25, 0.5, 0.5)
    v.match_aspect(200, 100)
    assert _corners(v) == pytest.approx((0.125, 0.25, 0.625, 0.5))
    with pytest.raises(DegenerateViewport):
        v.match_aspect(0, 100)


def test_tile_zoom_level():
    v = Viewport(0.0, 0.0, 1.0, 1.0)
    assert v.tile_zoom_level(256, 256, 256) == 0
    assert v.tile_zoom_level(512, 512, 256) == 1
    assert v.tile_zoom_level(300, 200, 256) == 1
    tiny = Viewport(0.5, 0.5, 0.5 + 1e-9, 0.5 + 1e-9)
    assert tiny.tile_zoom_level(1024, 768, 256) == MAX_ZOOM
    huge = Viewport(-4.0, -4.0, 4.0, 4.0)
    assert huge.tile_zoom_level_raw(256, 256, 256) == -3
    assert huge.tile_zoom_level(256, 256, 256) == 0


def test_needed_and_covered_ranges():
    v = Viewport(0.25, 0.25, 0.5, 0.5)
    assert v.needed_tiles(1) == ((0, 0), (1, 1))
    assert v.covered_tiles_zoom(2) == ((1, 1), (2, 2))
    assert v.needed_tiles(2) == ((1, 1), (2, 2))


def test_covered_tiles():
    v = Viewport(0.3, 0.3, 0.45, 0.45)
    assert v.covered_tiles(2) == {
        encode_tile(0, 0, 0),
        encode_tile(1, 0, 0),
        encode_tile(2, 1, 1),
    }


def test_covered_tiles_outside_world_are_skipped():
    v = Viewport(-0.5, -0.5, 0.25, 0.25)
    assert v.covered_tiles(1) == {encode_tile(0, 0, 0), encode_tile(1, 0, 0)}


def test_clamp_tile_range():
    assert clamp_tile_range(((-3, 2), (9, 5)), 3) == ((0, 2), (7, 5))


def test_lon_lat_bound_box_round_trip():
    bb = ((-122.0, 45.0), (-121.0, 46.0))
    v = Viewport.from_lon_lat_bound_box(bb)
    (lo_lon, lo_lat), (hi_lon, hi_lat) = v.lon_lat_bound_box()
    assert (lo_lon, lo_lat, hi_lon, hi_lat) == pytest.approx((-122.0, 45.0, -121.0, 46.0))
    assert v.center_lon_lat()[0] == pytest.approx(-121.5)


def test_overlaps_lon_lat_bound_box():
    v = Viewport.from_lon_lat_bound_box(((-122.0, 45.0), (-121.0, 46.0)))
    assert v.overlaps_lon_lat_bound_box(((-121.5, 45.5), (-121.4, 45.6)))
    assert v.overlaps_lon_lat_bound_box(((-125.0, 44.0), (-120.0, 47.0)))
    assert not v.overlaps_lon_lat_bound_box(((10.0, 10.0), (11.0, 11.0)))


def test_get_coordinate_corners():
    v = Viewport.from_lon_lat_bound_box(((-122.0, 45.0), (-121.0, 46.0)))
    assert v.get_coordinate(0.0, 0.0) == pytest.approx((-122.0, 46.0))
    assert v.get_coordinate(1.0, 1.0) == pytest.approx((-121.0, 45.0))


def test_width_miles_at_equator():
    v = Viewport(0.5, 0.45, 0.6, 0.55)
    assert v.width_miles() == pytest.approx(0.1 * 2 * math.pi * EARTH_RADIUS_MI)
