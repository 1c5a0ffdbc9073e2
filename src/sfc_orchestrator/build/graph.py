"""Insertion-ordered adjacency-list graph for file dependency bookkeeping."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import cast


class DependencyGraph:
    """Directed graph of named vertices.

    Vertices are unique and kept in insertion order. ``add_edge`` registers its
    source vertex on demand but never its target: an edge may point at a label
    that is not (yet) part of the vertex set.
    """

    __slots__ = ("_vertices", "_adjacency")

    def __init__(
        self,
        vertices: Iterable[str] | None = None,
        edges: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self._vertices: list[str] = []
        self._adjacency: dict[str, list[str]] = {}

        if vertices is not None:
            self.add_vertices(*vertices)

        if edges is not None:
            for source, target in edges:
                self.add_edge(source, target)

    @property
    def vertices(self) -> tuple[str, ...]:
        """All registered vertices in insertion order."""
        return tuple(self._vertices)

    @property
    def edges(self) -> tuple[tuple[str, str], ...]:
        """All edges as ``(source, target)`` pairs in insertion order."""
        return tuple(
            (source, target) for source in self._vertices for target in self._adjacency[source]
        )

    def __contains__(self, vertex: object) -> bool:
        return vertex in self._adjacency

    def __len__(self) -> int:
        return len(self._vertices)

    def add_vertices(self, *vertices: str) -> None:
        """Register each vertex that is not already present."""
        for vertex in vertices:
            self._validate_vertex(vertex)
            if vertex in self._adjacency:
                continue
            self._vertices.append(vertex)
            self._adjacency[vertex] = []

    def add_edge(self, source: str, target: str) -> None:
        """Append ``target`` to the adjacency of ``source``."""
        self._validate_vertex(source)
        self._validate_vertex(target)
        if source not in self._adjacency:
            self.add_vertices(source)
        self._adjacency[source].append(target)

    def targets(self, vertex: str) -> tuple[str, ...]:
        """Return the ordered adjacency of ``vertex``; empty for unknown labels."""
        return tuple(self._adjacency.get(vertex, ()))

    def sources_of(self, target: str) -> tuple[str, ...]:
        """Return vertices with at least one edge into ``target``."""
        return tuple(source for source in self._vertices if target in self._adjacency[source])

    def clear(self) -> None:
        self._vertices.clear()
        self._adjacency.clear()

    def serialize(self) -> dict[str, object]:
        """Serialize to a JSON-friendly mapping preserving insertion order."""
        return {
            "vertices": list(self._vertices),
            "edges": [[source, target] for source, target in self.edges],
        }

    @classmethod
    def deserialize(cls, payload: Mapping[str, object]) -> DependencyGraph:
        """Deserialize from :meth:`serialize` output."""
        vertices = cls._parse_vertices(payload.get("vertices", ()))
        edges = cls._parse_edges(payload.get("edges", ()))
        return cls(vertices=vertices, edges=edges)

    @staticmethod
    def _parse_vertices(raw_vertices: object) -> tuple[str, ...]:
        if not isinstance(raw_vertices, Sequence) or isinstance(
            raw_vertices, (str, bytes, bytearray)
        ):
            raise TypeError("'vertices' must be a sequence of strings.")

        vertices: list[str] = []
        for index, raw_vertex in enumerate(raw_vertices):
            if not isinstance(raw_vertex, str):
                raise TypeError(f"'vertices[{index}]' must be a string.")
            vertices.append(raw_vertex)
        return tuple(vertices)

    @staticmethod
    def _parse_edges(raw_edges: object) -> tuple[tuple[str, str], ...]:
        if not isinstance(raw_edges, Sequence) or isinstance(raw_edges, (str, bytes, bytearray)):
            raise TypeError("'edges' must be a sequence of [source, target] pairs.")

        edges: list[tuple[str, str]] = []
        for index, raw_edge in enumerate(raw_edges):
            if not isinstance(raw_edge, Sequence) or isinstance(raw_edge, (str, bytes, bytearray)):
                raise TypeError(f"'edges[{index}]' must be a sequence of two strings.")
            pair = cast("Sequence[object]", raw_edge)
            if len(pair) != 2:
                raise ValueError(f"'edges[{index}]' must contain exactly two vertices.")
            source, target = pair[0], pair[1]
            if not isinstance(source, str) or not isinstance(target, str):
                raise TypeError(f"'edges[{index}]' must contain only strings.")
            edges.append((source, target))
        return tuple(edges)

    @staticmethod
    def _validate_vertex(vertex: str) -> None:
        if not isinstance(vertex, str):
            raise TypeError(f"vertex must be a string, got {type(vertex).__name__}")
        if not vertex:
            raise ValueError("vertex must be non-empty.")


__all__ = ["DependencyGraph"]
