"""
Header parsing for CREATE statements.

Classifies the object kind that follows CREATE [OR REPLACE] and reads the
qualified object name. The name-reading helpers here are shared with the
dependency extractor so every name in the graph is normalized the same way.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ddl_dependency_parser.graph.dependency_graph import ObjectKind
from ddl_dependency_parser.parsers.tokenizer import Keyword, Token, TokenKind


DEFAULT_HEADER_STOP_WORDS = (
    'TYPE', 'INDEX', 'INDEXTYPE', 'SYNONYM', 'SEQUENCE', 'USER', 'ROLE',
    'JAVA', 'CONTEXT', 'DIRECTORY', 'LIBRARY', 'CLUSTER', 'DATABASE',
    'TABLESPACE', 'PROFILE', 'AUDIT', 'OPERATOR', 'DIMENSION', 'SCHEMA',
    'EDITION', 'OUTLINE',
)


def normalize_identifier(text: str) -> str:
    """
    Normalize one identifier piece.

    Quoted identifiers lose their delimiters, keep their case and have
    doubled quotes un-escaped. Unquoted identifiers are upper-cased.
    """
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        return text[1:-1].replace('""', '"')
    if text.startswith('"'):
        # Unterminated quoted run at end of input
        return text[1:].replace('""', '"')
    return text.upper()


def read_qualified_name(tokens: Sequence[Token], index: int,
                        stop: Optional[int] = None) -> Tuple[Optional[str], int]:
    """
    Read identifier pieces separated by single dots.

    Args:
        tokens: Token sequence
        index: Position of the first piece
        stop: Exclusive upper bound (defaults to the end of tokens)

    Returns:
        Tuple of (normalized dotted name or None, index after the name)
    """
    stop = len(tokens) if stop is None else stop
    parts: List[str] = []
    while index < stop and tokens[index].is_identifier:
        parts.append(normalize_identifier(tokens[index].text))
        index += 1
        if index + 1 < stop and tokens[index].is_punct('.') and tokens[index + 1].is_identifier:
            index += 1
            continue
        break

    if not parts:
        return None, index
    return '.'.join(parts), index


def skip_db_link(tokens: Sequence[Token], index: int, stop: Optional[int] = None) -> int:
    """Skip a trailing @dblink (itself possibly qualified) after a name."""
    stop = len(tokens) if stop is None else stop
    if index < stop and tokens[index].is_punct('@'):
        _, index = read_qualified_name(tokens, index + 1, stop)
    return index


@dataclass(frozen=True)
class ObjectHeader:
    """Result of parsing the part of a CREATE statement before its body."""
    kind: ObjectKind
    name: Optional[str]
    end: int

    @property
    def recognized(self) -> bool:
        return self.kind != ObjectKind.UNKNOWN


class HeaderParser:
    """
    Parser for the kind keyword and qualified name after CREATE.

    Plain words between CREATE [OR REPLACE] and the kind keyword (EDITIONABLE,
    GLOBAL TEMPORARY, NOFORCE, ...) are skipped. A stop word such as TYPE or
    INDEX, or any other token, leaves the statement unrecognized so that
    CREATE TYPE ... MEMBER FUNCTION is never read as a function.
    """

    def __init__(self, stop_words: Optional[Iterable[str]] = None):
        self.stop_words = frozenset(
            w.upper() for w in (stop_words if stop_words is not None else DEFAULT_HEADER_STOP_WORDS)
        )
        self.logger = logging.getLogger(self.__class__.__name__)

    def parse(self, tokens: Sequence[Token], index: int) -> ObjectHeader:
        """
        Parse a header starting at a CREATE token.

        Args:
            tokens: Token sequence
            index: Position of the CREATE token

        Returns:
            ObjectHeader; kind is UNKNOWN when no kind keyword is recognized and
            name is None when no usable identifier follows the kind
        """
        count = len(tokens)
        i = index + 1
        if (i + 1 < count and tokens[i].keyword == Keyword.OR
                and tokens[i + 1].keyword == Keyword.REPLACE):
            i += 2

        while i < count and self._is_skippable(tokens[i]):
            i += 1

        if i >= count:
            return ObjectHeader(ObjectKind.UNKNOWN, None, i)

        kind, i = self._read_kind(tokens, i)
        if kind == ObjectKind.UNKNOWN:
            return ObjectHeader(ObjectKind.UNKNOWN, None, i)

        name, i = read_qualified_name(tokens, i)
        if (kind == ObjectKind.MATERIALIZED_VIEW and name == 'LOG'
                and i < count and tokens[i].keyword == Keyword.ON):
            # CREATE MATERIALIZED VIEW LOG ON <table> declares no object
            return ObjectHeader(ObjectKind.UNKNOWN, None, i)
        if name is None:
            self.logger.debug(
                f"No usable name after CREATE {kind.value} at line {tokens[index].line}"
            )
        return ObjectHeader(kind, name, i)

    def _is_skippable(self, token: Token) -> bool:
        return token.kind == TokenKind.IDENTIFIER and token.text.upper() not in self.stop_words

    @staticmethod
    def _read_kind(tokens: Sequence[Token], i: int) -> Tuple[ObjectKind, int]:
        keyword = tokens[i].keyword
        following = tokens[i + 1].keyword if i + 1 < len(tokens) else None

        if keyword == Keyword.TABLE:
            return ObjectKind.TABLE, i + 1
        if keyword == Keyword.MATERIALIZED:
            if following == Keyword.VIEW:
                return ObjectKind.MATERIALIZED_VIEW, i + 2
            return ObjectKind.MATERIALIZED_VIEW, i + 1
        if keyword == Keyword.VIEW:
            return ObjectKind.VIEW, i + 1
        if keyword == Keyword.PACKAGE:
            if following == Keyword.BODY:
                return ObjectKind.PACKAGE_BODY, i + 2
            return ObjectKind.PACKAGE, i + 1
        if keyword == Keyword.FUNCTION:
            return ObjectKind.FUNCTION, i + 1
        if keyword == Keyword.PROCEDURE:
            return ObjectKind.PROCEDURE, i + 1
        if keyword == Keyword.TRIGGER:
            return ObjectKind.TRIGGER, i + 1
        return ObjectKind.UNKNOWN, i
