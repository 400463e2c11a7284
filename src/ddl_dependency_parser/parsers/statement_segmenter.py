"""
Statement segmentation for Oracle DDL token streams.

Locates CREATE statements and decides where each one ends. Declarative
objects end at the first top-level semicolon; procedural objects track
BEGIN/END nesting because a semicolon there usually closes an inner
statement, not the object.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from ddl_dependency_parser.graph.dependency_graph import ObjectKind
from ddl_dependency_parser.parsers.header_parser import HeaderParser
from ddl_dependency_parser.parsers.tokenizer import Keyword, Token, TokenKind


PROCEDURAL_KINDS = (
    ObjectKind.PACKAGE, ObjectKind.PACKAGE_BODY, ObjectKind.PROCEDURE,
    ObjectKind.FUNCTION, ObjectKind.TRIGGER,
)

# Kinds whose own header IS/AS opens a unit that the final END closes
UNIT_KINDS = (ObjectKind.PACKAGE_BODY, ObjectKind.PROCEDURE, ObjectKind.FUNCTION)


@dataclass(frozen=True)
class Statement:
    """Token span of one CREATE statement."""
    kind: ObjectKind
    name: Optional[str]
    start: int
    end: int
    body_start: int
    start_line: int = 1
    end_line: int = 1

    @property
    def recognized(self) -> bool:
        return self.kind != ObjectKind.UNKNOWN


class BlockTracker:
    """
    BEGIN/END nesting for one statement.

    Frames are opened by BEGIN and CASE, and by the IS/AS of a subprogram
    or package body and by DECLARE. The latter wait for a BEGIN and absorb
    it, so `PROCEDURE p IS ... BEGIN ... END;` is one frame.
    A COMPOUND TRIGGER section opens a frame that only the final END of
    the trigger closes, so its timing-point blocks nest inside it.
    """

    def __init__(self, kind: ObjectKind):
        self.kind = kind
        self.frames: List[bool] = []
        self.pending_unit = kind in UNIT_KINDS
        self.end_seen = False

    @property
    def depth(self) -> int:
        return len(self.frames)

    def feed(self, tokens: Sequence[Token], j: int, paren_depth: int) -> int:
        """
        Update nesting for the token at j.

        Returns:
            Number of tokens consumed (2 for END IF / END LOOP / END CASE
            and COMPOUND TRIGGER)
        """
        keyword = tokens[j].keyword
        following = tokens[j + 1].keyword if j + 1 < len(tokens) else None

        if tokens[j].is_punct(';'):
            if paren_depth == 0:
                # Forward declaration: the subprogram header ended without a body
                self.pending_unit = False
        elif keyword in (Keyword.IS, Keyword.AS):
            if self.pending_unit and paren_depth == 0:
                self.pending_unit = False
                if following not in (Keyword.LANGUAGE, Keyword.EXTERNAL):
                    self.frames.append(True)
        elif keyword in (Keyword.PROCEDURE, Keyword.FUNCTION):
            if self.kind in PROCEDURAL_KINDS and paren_depth == 0:
                self.pending_unit = True
        elif (self.kind == ObjectKind.TRIGGER and following == Keyword.TRIGGER
              and tokens[j].kind == TokenKind.IDENTIFIER and tokens[j].text.upper() == 'COMPOUND'):
            self.frames.append(False)
            return 2
        elif keyword == Keyword.DECLARE:
            self.frames.append(True)
        elif keyword == Keyword.BEGIN:
            if self.frames and self.frames[-1]:
                self.frames[-1] = False
            else:
                self.frames.append(False)
        elif keyword == Keyword.CASE:
            self.frames.append(False)
        elif keyword == Keyword.END:
            self.end_seen = True
            if following in (Keyword.IF, Keyword.LOOP):
                return 2
            if self.frames:
                self.frames.pop()
            if following == Keyword.CASE:
                return 2
        return 1


class StatementSegmenter:
    """
    Splits a token stream into per-object CREATE statement spans.

    Segmentation from any CREATE token is independent of where scanning
    started, which lets the parallel analyzer discover statements in token
    batches and still reproduce the sequential result.
    """

    def __init__(self, header_parser: Optional[HeaderParser] = None):
        self.header_parser = header_parser or HeaderParser()
        self.logger = logging.getLogger(self.__class__.__name__)

    def segment(self, tokens: Sequence[Token]) -> List[Statement]:
        """
        Segment a full token stream.

        Args:
            tokens: Tokens of the whole script

        Returns:
            Recognized statements in source order (unnamed ones included)
        """
        statements = []
        i = 0
        count = len(tokens)
        while i < count:
            if tokens[i].keyword != Keyword.CREATE:
                i += 1
                continue
            statement = self.segment_at(tokens, i)
            if statement.recognized:
                statements.append(statement)
            else:
                self.logger.debug(f"Skipping unrecognized CREATE at line {statement.start_line}")
            i = statement.end
        return statements

    def find_candidates(self, tokens: Sequence[Token], start: int, stop: int) -> List[Statement]:
        """
        Segment every CREATE token in [start, stop).

        Spans may run past stop; batches only decide where scanning for
        CREATE begins. Overlapping candidates are resolved by
        select_non_overlapping.
        """
        return [
            self.segment_at(tokens, i)
            for i in range(start, min(stop, len(tokens)))
            if tokens[i].keyword == Keyword.CREATE
        ]

    @staticmethod
    def select_non_overlapping(candidates: Iterable[Statement]) -> List[Statement]:
        """Keep candidates a left-to-right scan would reach, recognized ones only."""
        selected = []
        last_end = 0
        for statement in sorted(candidates, key=lambda s: s.start):
            if statement.start < last_end:
                continue
            last_end = statement.end
            if statement.recognized:
                selected.append(statement)
        return selected

    def segment_at(self, tokens: Sequence[Token], index: int) -> Statement:
        """
        Segment the statement starting at a CREATE token.

        Args:
            tokens: Token sequence
            index: Position of the CREATE token

        Returns:
            Statement; kind is UNKNOWN for a discarded statement, whose span
            runs to its first semicolon
        """
        count = len(tokens)
        header = self.header_parser.parse(tokens, index)

        if not header.recognized:
            end = count
            for j in range(index + 1, count):
                if tokens[j].is_punct(';'):
                    end = j + 1
                    break
            return self._statement(tokens, ObjectKind.UNKNOWN, None, index, end, end)

        tracker = BlockTracker(header.kind)
        paren_depth = 0
        j = header.end
        while j < count:
            token = tokens[j]
            if token.is_punct('('):
                paren_depth += 1
            elif token.is_punct(')'):
                paren_depth = max(0, paren_depth - 1)

            consumed = tracker.feed(tokens, j, paren_depth)

            if token.is_punct(';') and self._terminates(header.kind, paren_depth, tracker):
                return self._statement(tokens, header.kind, header.name, index, j + 1, header.end)
            j += consumed

        self.logger.debug(
            f"Statement {header.kind.value}:{header.name} runs to end of input without terminator"
        )
        return self._statement(tokens, header.kind, header.name, index, count, header.end)

    @staticmethod
    def _terminates(kind: ObjectKind, paren_depth: int, tracker: BlockTracker) -> bool:
        if paren_depth != 0:
            return False
        if kind == ObjectKind.PACKAGE:
            # Package specs never open a block; the closing END is the signal
            return tracker.end_seen
        return tracker.depth == 0

    @staticmethod
    def _statement(tokens: Sequence[Token], kind: ObjectKind, name: Optional[str],
                   start: int, end: int, body_start: int) -> Statement:
        last = tokens[end - 1] if end > start else tokens[start]
        return Statement(
            kind=kind,
            name=name,
            start=start,
            end=end,
            body_start=min(body_start, end),
            start_line=tokens[start].line,
            end_line=last.line,
        )
