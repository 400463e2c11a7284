"""
Table dependency extraction for segmented CREATE statements.

Each object kind gets its own token-level scan:
- tables: REFERENCES clauses, plus the query of CREATE TABLE ... AS SELECT
- views and materialized views: the defining query
- program units: DML writes and query reads anywhere in the body

The scan is deliberately flat. Nested sub-queries are picked up as
independent keyword matches instead of being parsed as trees.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ddl_dependency_parser.graph.dependency_graph import DependencyKind, ObjectKind, VIEW_KINDS
from ddl_dependency_parser.parsers.header_parser import read_qualified_name, skip_db_link
from ddl_dependency_parser.parsers.statement_segmenter import PROCEDURAL_KINDS, Statement
from ddl_dependency_parser.parsers.tokenizer import Keyword, Token


QUERY_SOURCE_KEYWORDS = (Keyword.FROM, Keyword.JOIN, Keyword.INTO, Keyword.USING)


@dataclass(frozen=True)
class TableReference:
    """A table named inside a statement body."""
    name: str
    kind: DependencyKind
    line: int = 0


def skip_parentheses(tokens: Sequence[Token], index: int, stop: int) -> int:
    """Index just past the balanced parenthesis span opening at index."""
    if index >= stop or not tokens[index].is_punct('('):
        return index
    depth = 1
    index += 1
    while index < stop and depth > 0:
        if tokens[index].is_punct('('):
            depth += 1
        elif tokens[index].is_punct(')'):
            depth -= 1
        index += 1
    return index


class TableReferenceReader:
    """Reads the table name that follows a FROM/JOIN/INTO/... keyword."""

    def read(self, tokens: Sequence[Token], index: int, stop: int) -> Tuple[Optional[str], int]:
        """
        Read one table reference.

        An optional ONLY is skipped. A parenthesized sub-query is skipped
        and yields no name, as does anything that is not identifier-shaped
        (keywords, literals, a plain parenthesis).

        Args:
            tokens: Token sequence
            index: Position right after the triggering keyword
            stop: Exclusive end of the statement span

        Returns:
            Tuple of (normalized name or None, index after what was read)
        """
        if index < stop and tokens[index].keyword == Keyword.ONLY:
            index += 1
        if index >= stop:
            return None, index

        token = tokens[index]
        if token.is_punct('('):
            if index + 1 < stop and tokens[index + 1].keyword == Keyword.SELECT:
                return None, skip_parentheses(tokens, index, stop)
            return None, index

        name, after = read_qualified_name(tokens, index, stop)
        if name is None:
            return None, index
        return name, skip_db_link(tokens, after, stop)


class DependencyExtractor:
    """
    Kind-specific extraction of referenced tables from a statement span.

    Tables yield ForeignKey references from REFERENCES clauses; a
    CREATE TABLE ... AS SELECT additionally yields ViewQuery references
    from its query. Views yield ViewQuery references. Program units yield
    DmlWrite for INSERT/MERGE INTO, UPDATE and DELETE targets and DmlRead
    for tables read by queries.
    """

    def __init__(self, reader: Optional[TableReferenceReader] = None):
        self.reader = reader or TableReferenceReader()
        self.logger = logging.getLogger(self.__class__.__name__)

    def extract(self, tokens: Sequence[Token], statement: Statement) -> List[TableReference]:
        """
        Extract table references from one statement.

        Args:
            tokens: Token sequence of the whole script
            statement: Segmented statement

        Returns:
            References in source order; duplicates are possible
        """
        start, stop = statement.body_start, statement.end

        if statement.kind == ObjectKind.TABLE:
            references = self._table_references(tokens, start, stop)
        elif statement.kind in VIEW_KINDS:
            references = self._view_references(tokens, start, stop)
        elif statement.kind in PROCEDURAL_KINDS:
            references = self._program_references(tokens, start, stop)
        else:
            references = []

        self.logger.debug(
            f"{statement.kind.value}:{statement.name} -> {len(references)} table references"
        )
        return references

    # ---------- per kind ----------

    def _table_references(self, tokens: Sequence[Token], start: int, stop: int) -> List[TableReference]:
        references = []
        for k in range(start, stop):
            if tokens[k].keyword == Keyword.REFERENCES:
                references.extend(self._read(tokens, k + 1, stop, DependencyKind.FOREIGN_KEY))

        as_index = self._find_top_level_as(tokens, start, stop)
        if as_index is not None:
            references.extend(self._query_references(tokens, as_index + 1, stop, DependencyKind.VIEW_QUERY))
        return references

    def _view_references(self, tokens: Sequence[Token], start: int, stop: int) -> List[TableReference]:
        as_index = self._find_top_level_as(tokens, start, stop)
        query_start = start if as_index is None else as_index + 1
        return self._query_references(tokens, query_start, stop, DependencyKind.VIEW_QUERY)

    def _program_references(self, tokens: Sequence[Token], start: int, stop: int) -> List[TableReference]:
        references = []
        in_query = False
        k = start
        while k < stop:
            token = tokens[k]
            keyword = token.keyword
            following = tokens[k + 1].keyword if k + 1 < stop else None

            if token.is_punct(';'):
                in_query = False
            elif keyword == Keyword.INSERT and following == Keyword.INTO:
                references.extend(self._read(tokens, k + 2, stop, DependencyKind.DML_WRITE))
                k += 2
                continue
            elif keyword == Keyword.MERGE:
                # MERGE ... USING <source> reads like a query
                in_query = True
                if following == Keyword.INTO:
                    references.extend(self._read(tokens, k + 2, stop, DependencyKind.DML_WRITE))
                    k += 2
                    continue
            elif keyword == Keyword.UPDATE:
                if k == start or tokens[k - 1].keyword != Keyword.FOR:
                    references.extend(self._read(tokens, k + 1, stop, DependencyKind.DML_WRITE))
            elif keyword == Keyword.DELETE:
                target = k + 2 if following == Keyword.FROM else k + 1
                references.extend(self._read(tokens, target, stop, DependencyKind.DML_WRITE))
                k = target
                continue
            elif keyword == Keyword.SELECT:
                in_query = True
            elif in_query and keyword in QUERY_SOURCE_KEYWORDS:
                references.extend(self._read(tokens, k + 1, stop, DependencyKind.DML_READ))
            k += 1
        return references

    # ---------- helpers ----------

    def _query_references(self, tokens: Sequence[Token], start: int, stop: int,
                          kind: DependencyKind) -> List[TableReference]:
        """References after FROM/JOIN/INTO/USING from the first SELECT on."""
        select_index = next(
            (k for k in range(start, stop) if tokens[k].keyword == Keyword.SELECT), None
        )
        if select_index is None:
            return []

        references = []
        for k in range(select_index + 1, stop):
            if tokens[k].keyword in QUERY_SOURCE_KEYWORDS:
                references.extend(self._read(tokens, k + 1, stop, kind))
        return references

    def _read(self, tokens: Sequence[Token], index: int, stop: int,
              kind: DependencyKind) -> List[TableReference]:
        name, _ = self.reader.read(tokens, index, stop)
        if name is None:
            return []
        return [TableReference(name=name, kind=kind, line=tokens[index].line)]

    @staticmethod
    def _find_top_level_as(tokens: Sequence[Token], start: int, stop: int) -> Optional[int]:
        depth = 0
        for k in range(start, stop):
            token = tokens[k]
            if token.is_punct('('):
                depth += 1
            elif token.is_punct(')'):
                depth = max(0, depth - 1)
            elif depth == 0 and token.keyword == Keyword.AS:
                return k
        return None
