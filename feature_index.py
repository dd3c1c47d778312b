# feature_index.py
"""
Trail / site feature records and the per-viewport feature index.

Records arrive as JSON (dataset shards or the feature store) and are validated
into a tagged union on ``type``:

    {"id": 3, "type": "trail", "tile": 1140851200, "boundBox": [[lon,lat],[lon,lat]],
     "name": "...", "route": [[lon,lat], ...], "length": 1.7}

``tile`` is the packed id of the smallest tile enclosing the feature; it is
computed once at ingestion (see ``TrailEntry.from_route``).
"""

from __future__ import annotations

from typing import Annotated, Dict, Iterator, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from shapely.geometry import LineString, Point

from tile_codec import encode_tile
from tile_coords import BoundBox, LonLat, route_length_miles
from tile_geometry import bound_box_for_route, tile_containing_route
from viewport import Viewport

# distance used when nothing was found
FAR_AWAY = 1e100


# --------------------------- Records --------------------------

class _Feature(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    tile: int
    bound_box: BoundBox = Field(alias="boundBox")
    name: str


class TrailEntry(_Feature):
    type: Literal["trail"] = "trail"
    route: List[LonLat]
    # miles
    length: float

    @classmethod
    def from_route(cls, id: int, name: str, route: Sequence[Sequence[float]],
                   length: Optional[float] = None) -> "TrailEntry":
        route = [(float(p[0]), float(p[1])) for p in route]
        return cls(
            id=id,
            name=name,
            route=route,
            tile=encode_tile(*tile_containing_route(route)),
            bound_box=bound_box_for_route(route),
            length=route_length_miles(route) if length is None else length,
        )

    def line(self) -> LineString:
        return LineString(self.route)


class SiteEntry(_Feature):
    type: Literal["site"] = "site"
    site_type: str
    location: LonLat
    url: Optional[str] = None


FeatureEntry = Annotated[Union[TrailEntry, SiteEntry], Field(discriminator="type")]

_feature_adapter = TypeAdapter(FeatureEntry)


def parse_feature(record: dict) -> Union[TrailEntry, SiteEntry]:
    return _feature_adapter.validate_python(record)


def dump_feature(feature: Union[TrailEntry, SiteEntry]) -> dict:
    return feature.model_dump(mode="json", by_alias=True)


# -------------------------- Geometry --------------------------

def closest_on_line(point: Sequence[float], endpoint1: Sequence[float],
                    endpoint2: Sequence[float]) -> Tuple[LonLat, float]:
    """Point on segment endpoint1-endpoint2 closest to point, and the distance to it.

    Distance is in coordinate units (degrees), not a physical distance.
    """
    p = Point(point[0], point[1])
    if tuple(endpoint1) == tuple(endpoint2):
        closest = Point(endpoint1[0], endpoint1[1])
    else:
        seg = LineString([endpoint1, endpoint2])
        closest = seg.interpolate(seg.project(p))
    return (closest.x, closest.y), p.distance(closest)


# ---------------------------- Index ---------------------------

class FeatureEntrySet:
    """Features loaded for an area, bucketed by tile, plus those overlapping the view."""

    def __init__(self):
        self.features: Dict[int, List[Union[TrailEntry, SiteEntry]]] = {}
        self.visible_features: List[Union[TrailEntry, SiteEntry]] = []

    def __iter__(self) -> Iterator[Union[TrailEntry, SiteEntry]]:
        return iter(self.visible_features)

    def __len__(self) -> int:
        return len(self.visible_features)

    def has_tile(self, tile: int) -> Optional[List[Union[TrailEntry, SiteEntry]]]:
        return self.features.get(tile)

    def add_feature(self, feature: Union[TrailEntry, SiteEntry], view: Viewport) -> None:
        if view.overlaps_lon_lat_bound_box(feature.bound_box):
            self.visible_features.append(feature)
        self.features.setdefault(feature.tile, []).append(feature)

    def bulk_add_feature(self, features: List[Union[TrailEntry, SiteEntry]], tile: int,
                         view: Viewport) -> None:
        """Add features which all share ``tile``."""
        self.features.setdefault(tile, []).extend(features)
        for feature in features:
            if view.overlaps_lon_lat_bound_box(feature.bound_box):
                self.visible_features.append(feature)

    def trails(self) -> Iterator[TrailEntry]:
        return (f for f in self.visible_features if isinstance(f, TrailEntry))

    def closest_feature(self, coord: Sequence[float], exclude_id: Optional[int] = None
                        ) -> Tuple[Optional[Union[TrailEntry, SiteEntry]], float]:
        """Closest visible feature to coord and its distance in coordinate units.

        Only trails are compared; sites are never returned.
        """
        best = None
        best_dist = FAR_AWAY
        p = Point(coord[0], coord[1])
        for f in self.trails():
            if f.id == exclude_id or len(f.route) < 2:
                continue
            d = f.line().distance(p)
            if d < best_dist:
                best_dist = d
                best = f
        # TODO: compare site features by their location once sites can be selected
        return best, best_dist

    def closest_trail(self, coord: Sequence[float], exclude_id: Optional[int] = None
                      ) -> Tuple[Optional[TrailEntry], float]:
        return self.closest_feature(coord, exclude_id)

    def find_trail(self, id: int) -> Optional[TrailEntry]:
        for f in self.visible_features:
            if f.id == id and isinstance(f, TrailEntry):
                return f
        return None
