"""Drops degenerate (all-zero) boxes and graphs left with nothing in them."""

from bbox_service.models import GEOMETRY_FIELDS, BoundingBox, Graph


def is_degenerate(box: BoundingBox) -> bool:
    return all(getattr(box, field) == 0 for field in GEOMETRY_FIELDS)


def sanitize_graph(graph: Graph) -> Graph | None:
    """Return ``graph`` without degenerate boxes, or None if nothing is left."""
    sources = [b for b in graph.sources if not is_degenerate(b)]
    targets = [b for b in graph.targets if not is_degenerate(b)]
    if not sources and not targets:
        return None
    if len(sources) == len(graph.sources) and len(targets) == len(graph.targets):
        return graph
    return graph.model_copy(update={"sources": sources, "targets": targets})


def remove_zeros(graphs: list[Graph]) -> list[Graph]:
    cleaned = []
    for graph in graphs:
        kept = sanitize_graph(graph)
        if kept is not None:
            cleaned.append(kept)
    return cleaned
