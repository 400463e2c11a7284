"""
Dependency graph model for Oracle schema objects.

This module holds the object/table/edge collections produced by an analysis
run together with the closure and statistics queries used for impact
analysis and dead-table detection.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Set, Tuple


class ObjectKind(Enum):
    """Kinds of declared database objects."""
    TABLE = "Table"
    VIEW = "View"
    MATERIALIZED_VIEW = "MaterializedView"
    PACKAGE = "Package"
    PACKAGE_BODY = "PackageBody"
    PROCEDURE = "Procedure"
    FUNCTION = "Function"
    TRIGGER = "Trigger"
    UNKNOWN = "Unknown"


class DependencyKind(Enum):
    """Relationship kinds between an object and a table it touches."""
    FOREIGN_KEY = "ForeignKey"
    VIEW_QUERY = "ViewQuery"
    DML_READ = "DmlRead"
    DML_WRITE = "DmlWrite"


VIEW_KINDS = (ObjectKind.VIEW, ObjectKind.MATERIALIZED_VIEW)


class GraphError(Exception):
    """Raised when a caller breaks the graph's contract."""
    pass


def name_key(name: str) -> str:
    """Case-insensitive comparison key for object and table names."""
    return name.upper()


@dataclass(frozen=True)
class ObjectId:
    """Identity of a declared object: normalized name plus kind."""

    name: str
    kind: ObjectKind

    def __hash__(self):
        return hash((name_key(self.name), self.kind))

    def __eq__(self, other):
        if not isinstance(other, ObjectId):
            return False
        return name_key(self.name) == name_key(other.name) and self.kind == other.kind

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"


@dataclass(frozen=True)
class Edge:
    """Directed edge from an object to a plain table name."""

    source: ObjectId
    target: str
    kind: DependencyKind

    def __hash__(self):
        return hash((self.source, name_key(self.target), self.kind))

    def __eq__(self, other):
        if not isinstance(other, Edge):
            return False
        return (self.source == other.source and
                name_key(self.target) == name_key(other.target) and
                self.kind == other.kind)


@dataclass
class GraphStats:
    """Counts and per-table degrees of a dependency graph."""
    total_tables: int
    total_objects: int
    total_edges: int
    objects_by_kind: Dict[ObjectKind, int] = field(default_factory=dict)
    edges_by_kind: Dict[DependencyKind, int] = field(default_factory=dict)
    in_degree: Dict[str, int] = field(default_factory=dict)
    out_degree: Dict[str, int] = field(default_factory=dict)

    @property
    def total_objects_by_kind(self) -> int:
        return sum(self.objects_by_kind.values())


class DependencyGraph:
    """
    Set-semantics graph of declared objects and the tables they touch.

    Tables are kept by case-insensitive key; the first spelling seen is the
    one reported. Every edge insert also registers its target table, so a
    partially populated graph never holds an edge without its table.
    """

    def __init__(self):
        self._tables: Dict[str, str] = {}
        self._objects: Set[ObjectId] = set()
        self._edges: Set[Edge] = set()

    # ---------- read surface ----------

    @property
    def tables(self) -> Set[str]:
        return set(self._tables.values())

    @property
    def objects(self) -> Set[ObjectId]:
        return set(self._objects)

    @property
    def edges(self) -> Set[Edge]:
        return set(self._edges)

    @property
    def views(self) -> Set[str]:
        """Names of declared views and materialized views."""
        return {obj.name for obj in self._objects if obj.kind in VIEW_KINDS}

    def has_table(self, name: str) -> bool:
        return name_key(name) in self._tables

    def __eq__(self, other):
        if not isinstance(other, DependencyGraph):
            return NotImplemented
        return (set(self._tables) == set(other._tables) and
                self._objects == other._objects and
                self._edges == other._edges)

    def __repr__(self) -> str:
        return (f"DependencyGraph(tables={len(self._tables)}, "
                f"objects={len(self._objects)}, edges={len(self._edges)})")

    def summary(self) -> str:
        return (f"DependencyGraph: {len(self._tables)} tables, "
                f"{len(self._objects)} objects, {len(self._edges)} edges")

    # ---------- population ----------

    def add_table(self, name: str) -> None:
        if name and name.strip():
            self._tables.setdefault(name_key(name), name)

    def add_object(self, obj: ObjectId) -> None:
        if obj is None:
            raise GraphError("Cannot add a missing object to the graph")
        self._objects.add(obj)
        if obj.kind == ObjectKind.TABLE:
            self.add_table(obj.name)

    def add_edge(self, source: ObjectId, target: str, kind: DependencyKind) -> None:
        """
        Add an edge and register its target table.

        Args:
            source: Object the edge starts from
            target: Plain table name; it need not be a declared table
            kind: Relationship kind

        Raises:
            GraphError: If the source object is missing
        """
        if source is None:
            raise GraphError("Edge source object is required")
        if not target or not target.strip():
            return
        self.add_table(target)
        self._edges.add(Edge(source, target, kind))

    def merge(self, other: "DependencyGraph") -> "DependencyGraph":
        """
        Union another graph into this one.

        Args:
            other: Graph to merge; typically a worker's local graph

        Returns:
            This graph, for chaining

        Raises:
            GraphError: If other is None
        """
        if other is None:
            raise GraphError("Cannot merge a missing graph")
        for key, name in other._tables.items():
            self._tables.setdefault(key, name)
        self._objects.update(other._objects)
        self._edges.update(other._edges)
        return self

    def clear(self) -> None:
        self._tables.clear()
        self._objects.clear()
        self._edges.clear()

    # ---------- object queries ----------

    def objects_by_kind(self, kind: ObjectKind) -> List[ObjectId]:
        return [obj for obj in self._objects if obj.kind == kind]

    def edges_by_kind(self, kind: DependencyKind) -> List[Edge]:
        return [edge for edge in self._edges if edge.kind == kind]

    def objects_referencing_table(self, table: str) -> Set[ObjectId]:
        """Objects with a direct edge into the table."""
        key = name_key(table)
        return {edge.source for edge in self._edges if name_key(edge.target) == key}

    def tables_referenced_by(self, object_name: str) -> Set[str]:
        """Targets of every edge whose source has the given name."""
        key = name_key(object_name)
        return self._distinct_names(
            edge.target for edge in self._edges if name_key(edge.source.name) == key
        )

    def table_foreign_key_edges(self) -> Iterator[Tuple[str, str]]:
        """Yield (from_table, to_table) for FK edges declared by tables."""
        for edge in self._edges:
            if edge.kind == DependencyKind.FOREIGN_KEY and edge.source.kind == ObjectKind.TABLE:
                yield edge.source.name, edge.target

    # ---------- closures ----------

    def find_dependent_tables(self, table: str) -> Set[str]:
        """
        Tables reachable from a table by following FK edges forward.

        The seed is part of the result only when a cycle (including a
        self-reference) leads back to it.

        Args:
            table: Seed table name, compared case-insensitively

        Returns:
            Set of reachable table names
        """
        adjacency: Dict[str, List[str]] = {}
        for edge in self.edges_by_kind(DependencyKind.FOREIGN_KEY):
            adjacency.setdefault(name_key(edge.source.name), []).append(edge.target)
        return self._reach(table, adjacency)

    def find_dependencies(self, table: str) -> Set[str]:
        """
        Tables reachable from a table by following FK edges in reverse.

        Args:
            table: Seed table name, compared case-insensitively

        Returns:
            Set of names of the tables whose FKs lead, directly or not, to the seed
        """
        adjacency: Dict[str, List[str]] = {}
        for edge in self.edges_by_kind(DependencyKind.FOREIGN_KEY):
            adjacency.setdefault(name_key(edge.target), []).append(edge.source.name)
        return self._reach(table, adjacency)

    def find_objects_using_table(self, table: str) -> Set[ObjectId]:
        """
        Objects that use a table directly or through other objects.

        Direct users are the sources of edges into the table. From there the
        closure follows names: an object is added when it has an edge whose
        target is the name of an object already in the result.

        Args:
            table: Table name, compared case-insensitively

        Returns:
            Set of object ids
        """
        users_by_target: Dict[str, Set[ObjectId]] = {}
        for edge in self._edges:
            users_by_target.setdefault(name_key(edge.target), set()).add(edge.source)

        result: Set[ObjectId] = set()
        queue = deque(users_by_target.get(name_key(table), ()))
        while queue:
            current = queue.popleft()
            if current in result:
                continue
            result.add(current)
            for dependent in users_by_target.get(name_key(current.name), ()):
                if dependent not in result:
                    queue.append(dependent)
        return result

    # ---------- statistics ----------

    def stats(self) -> GraphStats:
        """
        Object/edge counts by kind and per-table edge degrees.

        Degrees are computed over the table set plus declared views and count
        edges, not distinct neighbours.
        """
        objects_by_kind: Dict[ObjectKind, int] = {}
        for obj in self._objects:
            objects_by_kind[obj.kind] = objects_by_kind.get(obj.kind, 0) + 1

        edges_by_kind: Dict[DependencyKind, int] = {}
        in_counts: Dict[str, int] = {}
        out_counts: Dict[str, int] = {}
        for edge in self._edges:
            edges_by_kind[edge.kind] = edges_by_kind.get(edge.kind, 0) + 1
            target_key = name_key(edge.target)
            source_key = name_key(edge.source.name)
            in_counts[target_key] = in_counts.get(target_key, 0) + 1
            out_counts[source_key] = out_counts.get(source_key, 0) + 1

        nodes = dict(self._tables)
        for view in self.views:
            nodes.setdefault(name_key(view), view)

        return GraphStats(
            total_tables=len(self._tables),
            total_objects=len(self._objects),
            total_edges=len(self._edges),
            objects_by_kind=objects_by_kind,
            edges_by_kind=edges_by_kind,
            in_degree={name: in_counts.get(key, 0) for key, name in nodes.items()},
            out_degree={name: out_counts.get(key, 0) for key, name in nodes.items()},
        )

    def unused_tables(self) -> Set[str]:
        """Tables that are never the target of any edge."""
        used = {name_key(edge.target) for edge in self._edges}
        return {name for key, name in self._tables.items() if key not in used}

    # ---------- helpers ----------

    @staticmethod
    def _distinct_names(names: Iterable[str]) -> Set[str]:
        seen: Dict[str, str] = {}
        for name in names:
            seen.setdefault(name_key(name), name)
        return set(seen.values())

    @staticmethod
    def _reach(seed: str, adjacency: Dict[str, List[str]]) -> Set[str]:
        found: Dict[str, str] = {}
        visited: Set[str] = set()
        queue = deque([seed])
        while queue:
            current = queue.popleft()
            current_key = name_key(current)
            if current_key in visited:
                continue
            visited.add(current_key)
            for neighbour in adjacency.get(current_key, ()):
                neighbour_key = name_key(neighbour)
                found.setdefault(neighbour_key, neighbour)
                if neighbour_key not in visited:
                    queue.append(neighbour)
        return set(found.values())
