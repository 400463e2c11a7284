"""
Unit tests for statement segmentation.
"""

import pytest

from ddl_dependency_parser.graph.dependency_graph import ObjectKind
from ddl_dependency_parser.parsers.statement_segmenter import StatementSegmenter


def segment(tokenize, ddl):
    tokens = tokenize(ddl)
    return tokens, StatementSegmenter().segment(tokens)


class TestBlockNesting:
    """Test termination of procedural statements."""

    def test_nested_blocks_end_at_final_end(self, tokenize):
        """Inner END; does not terminate the procedure."""
        tokens, statements = segment(
            tokenize,
            "CREATE PROCEDURE P IS BEGIN IF X THEN BEGIN NULL; END; END IF; END; CREATE TABLE T2 (a NUMBER);"
        )
        assert [(s.kind, s.name) for s in statements] == [
            (ObjectKind.PROCEDURE, 'P'), (ObjectKind.TABLE, 'T2'),
        ]
        first = statements[0]
        assert tokens[first.end - 2].text == 'END'
        assert tokens[first.end].text == 'CREATE'

    def test_case_expression_nests(self, tokenize):
        """CASE ... END inside a function body is its own frame."""
        _, statements = segment(
            tokenize,
            "CREATE FUNCTION f RETURN NUMBER IS BEGIN RETURN CASE WHEN 1 = 1 THEN 1 ELSE 0 END; END; "
            "CREATE TABLE t (a NUMBER);"
        )
        assert [s.name for s in statements] == ['F', 'T']

    def test_loops_and_end_case(self, tokenize):
        """END LOOP and END CASE are consumed as pairs."""
        _, statements = segment(
            tokenize,
            "CREATE PROCEDURE p AS BEGIN LOOP EXIT; END LOOP; "
            "CASE v WHEN 1 THEN NULL; END CASE; END p; CREATE VIEW v2 AS SELECT 1 FROM dual;"
        )
        assert [s.name for s in statements] == ['P', 'V2']

    def test_nested_subprograms_and_forward_declarations(self, tokenize):
        """Local subprograms absorb their own BEGIN; forward declarations open nothing."""
        _, statements = segment(
            tokenize,
            "CREATE PROCEDURE p IS PROCEDURE inner; PROCEDURE inner IS BEGIN NULL; END; "
            "BEGIN inner; END; CREATE TABLE t (a NUMBER);"
        )
        assert [s.name for s in statements] == ['P', 'T']

    def test_declare_block_in_trigger(self, tokenize):
        """DECLARE absorbs the BEGIN of its block."""
        _, statements = segment(
            tokenize,
            "CREATE TRIGGER trg BEFORE INSERT ON t FOR EACH ROW DECLARE v NUMBER; BEGIN v := 1; END; "
            "CREATE TABLE t (a NUMBER);"
        )
        assert [s.kind for s in statements] == [ObjectKind.TRIGGER, ObjectKind.TABLE]

    def test_package_body_with_initialization(self, tokenize):
        """A package body ends at the END that closes the body."""
        _, statements = segment(
            tokenize,
            "CREATE PACKAGE BODY pk AS PROCEDURE a IS BEGIN NULL; END a; "
            "BEGIN NULL; END pk; CREATE TABLE t (a NUMBER);"
        )
        assert [(s.kind, s.name) for s in statements] == [
            (ObjectKind.PACKAGE_BODY, 'PK'), (ObjectKind.TABLE, 'T'),
        ]

    def test_package_spec_ends_after_end(self, tokenize):
        """Package specs end at the first top-level semicolon after END."""
        _, statements = segment(
            tokenize,
            "CREATE PACKAGE pk AS TYPE r IS RECORD (a NUMBER); PROCEDURE x; END pk; "
            "CREATE TABLE t (a NUMBER);"
        )
        assert [(s.kind, s.name) for s in statements] == [
            (ObjectKind.PACKAGE, 'PK'), (ObjectKind.TABLE, 'T'),
        ]

    def test_call_spec_opens_no_block(self, tokenize):
        """AS LANGUAGE call specs end at their semicolon."""
        _, statements = segment(
            tokenize,
            "CREATE FUNCTION f RETURN NUMBER AS LANGUAGE JAVA NAME 'X.y()'; CREATE TABLE t (a NUMBER);"
        )
        assert [s.name for s in statements] == ['F', 'T']

    def test_compound_trigger_spans_timing_points(self, tokenize):
        """Timing-point END ... ; nests inside the compound trigger section."""
        _, statements = segment(
            tokenize,
            "CREATE OR REPLACE TRIGGER trg FOR INSERT ON orders COMPOUND TRIGGER "
            "BEFORE STATEMENT IS BEGIN NULL; END BEFORE STATEMENT; "
            "AFTER EACH ROW IS BEGIN INSERT INTO log_t VALUES (1); END AFTER EACH ROW; "
            "END trg; CREATE TABLE t (a NUMBER);"
        )
        assert [(s.kind, s.name) for s in statements] == [
            (ObjectKind.TRIGGER, 'TRG'), (ObjectKind.TABLE, 'T'),
        ]


class TestDeclarativeStatements:
    """Test termination of tables and views."""

    def test_semicolon_inside_parentheses_or_strings(self, tokenize):
        """Only a top-level semicolon ends a table."""
        _, statements = segment(
            tokenize,
            "CREATE TABLE t (a VARCHAR2(10) DEFAULT ';', b NUMBER); CREATE TABLE u (c NUMBER);"
        )
        assert [s.name for s in statements] == ['T', 'U']

    def test_unterminated_statement_runs_to_end(self, tokenize):
        """A missing terminator extends the span to end of input."""
        tokens, statements = segment(tokenize, "CREATE TABLE t (a NUMBER REFERENCES p(id)")
        assert len(statements) == 1
        assert statements[0].end == len(tokens)

    def test_unrecognized_statement_is_skipped(self, tokenize):
        """Unknown CREATE statements are discarded at their semicolon."""
        _, statements = segment(
            tokenize,
            "CREATE INDEX ix ON t(a); CREATE SEQUENCE s; CREATE TABLE t (a NUMBER);"
        )
        assert [s.name for s in statements] == ['T']

    def test_unnamed_statement_is_kept(self, tokenize):
        """A recognized kind without a name still consumes its span."""
        _, statements = segment(tokenize, "CREATE TABLE (a NUMBER); CREATE TABLE t (a NUMBER);")
        assert [s.name for s in statements] == [None, 'T']

    def test_line_numbers(self, tokenize):
        """Statements record their first and last source line."""
        _, statements = segment(tokenize, "\nCREATE TABLE t (\n  a NUMBER\n);\n")
        assert (statements[0].start_line, statements[0].end_line) == (2, 4)


class TestBatchedSegmentation:
    """Test that batched candidate discovery reproduces the sequential scan."""

    @pytest.mark.parametrize("batch_size", [1, 3, 7, 50, 10000])
    def test_batches_match_sequential(self, tokenize, schema_ddl, batch_size):
        """Candidates from any batch split filter down to the sequential result."""
        tokens = tokenize(schema_ddl)
        segmenter = StatementSegmenter()
        candidates = []
        for start in range(0, len(tokens), batch_size):
            candidates.extend(segmenter.find_candidates(tokens, start, start + batch_size))
        assert StatementSegmenter.select_non_overlapping(candidates) == segmenter.segment(tokens)

    def test_overlapping_candidates_are_dropped(self, tokenize):
        """A CREATE inside an accepted span is not a statement of its own."""
        tokens = tokenize("CREATE PROCEDURE p IS BEGIN CREATE; END; CREATE TABLE t (a NUMBER);")
        segmenter = StatementSegmenter()
        candidates = segmenter.find_candidates(tokens, 0, len(tokens))
        assert len(candidates) == 3
        selected = StatementSegmenter.select_non_overlapping(reversed(candidates))
        assert [s.name for s in selected] == ['P', 'T']

    def test_schema_statement_kinds(self, tokenize, schema_ddl):
        """The sample schema segments into one statement per object."""
        statements = StatementSegmenter().segment(tokenize(schema_ddl))
        assert [s.kind for s in statements] == [
            ObjectKind.TABLE, ObjectKind.TABLE, ObjectKind.TABLE, ObjectKind.TABLE, ObjectKind.TABLE,
            ObjectKind.VIEW, ObjectKind.MATERIALIZED_VIEW, ObjectKind.PROCEDURE,
            ObjectKind.PACKAGE, ObjectKind.PACKAGE_BODY, ObjectKind.TRIGGER,
        ]
