"""Tests for graph-free node proximity matching."""

from __future__ import annotations

from street_coverage.graph import StrTreeNodeIndex, count_hits_by_way, match_nodes
from street_coverage.models import BoundingBox, GraphNode


def _build_nodes(offset):
    nodes = []
    for i in range(6):
        lat, lng = offset(0, 40.0 * i)
        nodes.append(GraphNode(node_id=100 + i, lat=lat, lng=lng, way_ids=(1,)))
    lat, lng = offset(24.0, 0)
    nodes.append(GraphNode(node_id=200, lat=lat, lng=lng, way_ids=(2, 1)))
    lat, lng = offset(26.0, 200.0)
    nodes.append(GraphNode(node_id=201, lat=lat, lng=lng, way_ids=(2,)))
    return nodes


def test_index_answers_bbox_queries(offset) -> None:
    index = StrTreeNodeIndex(_build_nodes(offset))
    assert len(index) == 8
    lat0, lng0 = offset(-5, -5)
    lat1, lng1 = offset(5, 45)
    found = index.nodes_in_bbox(BoundingBox(lat0, lng0, lat1, lng1))
    assert [n.node_id for n in found] == [100, 101]
    assert StrTreeNodeIndex([]).nodes_in_bbox(BoundingBox(0, 0, 1, 1)) == []


def test_match_nodes_respects_true_radius(offset, point_factory) -> None:
    index = StrTreeNodeIndex(_build_nodes(offset))
    points = [point_factory(0, 0), point_factory(0, 5)]

    hits = match_nodes(points, index, radius_m=25.0)

    # 200 is 24 m north of the first point; 101 is 35 m east of the second.
    assert sorted(hits) == [100, 200]


def test_match_nodes_is_order_independent(offset, point_factory) -> None:
    index = StrTreeNodeIndex(_build_nodes(offset))
    points = [point_factory(0, 40.0 * i + 3) for i in range(6)]
    forward = match_nodes(points, index, radius_m=25.0)
    backward = match_nodes(list(reversed(points)), index, radius_m=25.0)
    assert set(forward) == set(backward) == {100, 101, 102, 103, 104, 105, 200}


def test_count_hits_by_way_counts_distinct_nodes(offset) -> None:
    nodes = _build_nodes(offset)
    counts = count_hits_by_way([nodes[0], nodes[0], nodes[6], nodes[7]])
    assert counts == {1: 2, 2: 2}
