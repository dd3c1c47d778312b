# tile_codec.py
"""
Pack a tile (zoom, x, y) with zoom <= 15 into a single 32 bit integer.

Layout, most significant bits first:

    11 <y:15><x:15>                 zoom 15
    10 <pad><y:14><x:14>            zoom 14
    00 <zoom:4> <pad><y:z><x:z>     zoom 0 - 13

The packed value is used as the key for every per-tile lookup (feature index,
feature store, dataset shard files).
"""

from __future__ import annotations

from typing import NamedTuple

# --------------------------- Config ---------------------------

MAX_ZOOM_ENCODE = 15

_HEADER_Z15 = 0b11
_HEADER_Z14 = 0b10
_HEADER_ZFIELD = 0b00


class UnsupportedZoom(ValueError):
    pass


class TileId(NamedTuple):
    zoom: int
    x: int
    y: int


def _check_zoom(z: int) -> None:
    if not 0 <= z <= MAX_ZOOM_ENCODE:
        raise UnsupportedZoom(f"cannot encode zoom {z}: packed tiles support zoom 0..{MAX_ZOOM_ENCODE}")


def encode_tile(z: int, x: int, y: int) -> int:
    _check_zoom(z)
    size = 1 << z
    if not (0 <= x < size and 0 <= y < size):
        raise ValueError(f"tile ({z}, {x}, {y}) is outside the {size}x{size} grid")

    if z == 15:
        res = _HEADER_Z15 << 30
    elif z == 14:
        res = _HEADER_Z14 << 30
    else:
        res = (_HEADER_ZFIELD << 30) | (z << 26)
    return res | x | (y << z)


def decode_tile(tile: int) -> TileId:
    if not 0 <= tile < (1 << 32):
        raise ValueError(f"packed tile {tile} is not a 32 bit value")
    header = (tile >> 30) & 0b11
    if header == _HEADER_Z15:
        z = 15
    elif header == _HEADER_Z14:
        z = 14
    elif header == _HEADER_ZFIELD:
        z = (tile >> 26) & 0b1111
        if z > 13:
            raise ValueError(f"packed tile {tile:#010x} carries zoom {z} in the zoom field")
    else:
        raise ValueError(f"packed tile {tile:#010x} has unknown header {header:#04b}")

    mask = (1 << z) - 1
    return TileId(z, tile & mask, (tile >> z) & mask)
