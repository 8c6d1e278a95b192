"""Edge-graph and node-proximity matching pipelines."""

from .completion import group_ways_by_name, is_way_complete, way_completions
from .edges import validate_edges
from .node_proximity import StrTreeNodeIndex, count_hits_by_way, match_nodes
from .trace_matching import chunk_points, match_in_chunks, merge_chunk_results
from .way_resolver import WayResolver

__all__ = [
    "StrTreeNodeIndex",
    "WayResolver",
    "chunk_points",
    "count_hits_by_way",
    "group_ways_by_name",
    "is_way_complete",
    "match_in_chunks",
    "match_nodes",
    "merge_chunk_results",
    "validate_edges",
    "way_completions",
]
