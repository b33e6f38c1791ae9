"""
Source/target overlap detection.

Two rectangles are disjoint only when one lies strictly to one side of
the other on either axis, so boxes that share an edge count as
intersecting.
"""

from bbox_service.models import BoundingBox, Graph, Intersection


def boxes_intersect(source: BoundingBox, target: BoundingBox) -> bool:
    return not (
        source.right < target.left
        or source.left > target.right
        or source.bottom < target.top
        or source.top > target.bottom
    )


def find_intersections(graph: Graph) -> list[Intersection]:
    return [
        Intersection(
            source=src.selector,
            target=tgt.selector,
            source_box=src,
            target_box=tgt,
        )
        for src in graph.sources
        for tgt in graph.targets
        if boxes_intersect(src, tgt)
    ]


def annotate(graph: Graph) -> Graph:
    return graph.model_copy(update={"intersections": find_intersections(graph)})
