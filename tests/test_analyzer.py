"""
Tests for the analysis orchestrator.
"""

import logging

import pytest

from ddl_dependency_parser.analyzer import (
    AnalysisResult, CancellationToken, DependencyAnalyzer, InputError, read_ddl_file,
)
from ddl_dependency_parser.graph.dependency_graph import DependencyKind, Edge, ObjectId, ObjectKind


PARALLEL_CONFIG = {
    'workers': 2,
    'token_batch_size': 7,
    'statement_batch_size': 2,
}


class TestSequentialAnalysis:
    """Test end-to-end analysis of the sample schema."""

    def test_schema_graph(self, schema_ddl):
        graph = DependencyAnalyzer().analyze(schema_ddl)

        assert graph.tables == {
            'CUSTOMERS', 'ORDERS', 'ORDER_LINES', 'AUDIT_LOG', 'ARCHIVE_ORDERS', 'APP.ORDERS',
        }
        assert len(graph.objects) == 11
        assert graph.edges == {
            Edge(ObjectId('ORDERS', ObjectKind.TABLE), 'CUSTOMERS', DependencyKind.FOREIGN_KEY),
            Edge(ObjectId('ORDERS', ObjectKind.TABLE), 'ORDERS', DependencyKind.FOREIGN_KEY),
            Edge(ObjectId('ORDER_LINES', ObjectKind.TABLE), 'APP.ORDERS', DependencyKind.FOREIGN_KEY),
            Edge(ObjectId('ARCHIVE_ORDERS', ObjectKind.TABLE), 'ORDERS', DependencyKind.VIEW_QUERY),
            Edge(ObjectId('V_CUSTOMER_ORDERS', ObjectKind.VIEW), 'CUSTOMERS', DependencyKind.VIEW_QUERY),
            Edge(ObjectId('V_CUSTOMER_ORDERS', ObjectKind.VIEW), 'ORDERS', DependencyKind.VIEW_QUERY),
            Edge(ObjectId('MV_ORDER_TOTALS', ObjectKind.MATERIALIZED_VIEW), 'ORDER_LINES',
                 DependencyKind.VIEW_QUERY),
            Edge(ObjectId('CLOSE_ORDER', ObjectKind.PROCEDURE), 'ORDER_LINES', DependencyKind.DML_READ),
            Edge(ObjectId('CLOSE_ORDER', ObjectKind.PROCEDURE), 'ORDERS', DependencyKind.DML_WRITE),
            Edge(ObjectId('CLOSE_ORDER', ObjectKind.PROCEDURE), 'AUDIT_LOG', DependencyKind.DML_WRITE),
            Edge(ObjectId('ORDER_API', ObjectKind.PACKAGE_BODY), 'ORDERS', DependencyKind.DML_WRITE),
            Edge(ObjectId('TRG_ORDERS_AUDIT', ObjectKind.TRIGGER), 'AUDIT_LOG', DependencyKind.DML_WRITE),
        }

    def test_schema_queries(self, schema_ddl):
        graph = DependencyAnalyzer().analyze(schema_ddl)
        assert graph.unused_tables() == {'ARCHIVE_ORDERS'}
        assert graph.find_dependent_tables('orders') == {'CUSTOMERS', 'ORDERS'}
        assert graph.find_objects_using_table('ORDER_LINES') == {
            ObjectId('MV_ORDER_TOTALS', ObjectKind.MATERIALIZED_VIEW),
            ObjectId('CLOSE_ORDER', ObjectKind.PROCEDURE),
        }

    def test_idempotence(self, schema_ddl):
        """Analyzing the same text twice yields set-equal graphs."""
        analyzer = DependencyAnalyzer()
        assert analyzer.analyze(schema_ddl) == analyzer.analyze(schema_ddl)

    def test_unused_tables_property(self):
        graph = DependencyAnalyzer().analyze(
            "CREATE TABLE A (x NUMBER); CREATE TABLE B (y NUMBER); CREATE VIEW V AS SELECT y FROM B;"
        )
        assert graph.unused_tables() == {'A'}

    def test_unnamed_statements_are_dropped(self):
        result = DependencyAnalyzer().analyze_text("CREATE TABLE (a NUMBER); CREATE TABLE t (a NUMBER);")
        assert isinstance(result, AnalysisResult)
        assert result.statements == 2
        assert result.dropped == 1
        assert result.graph.objects == {ObjectId('T', ObjectKind.TABLE)}

    def test_garbage_input_never_raises(self):
        result = DependencyAnalyzer().analyze_text("CREATE ;;; CREATE VIEW \"unterminated ( SELECT")
        assert not result.cancelled

    def test_scanning_tokenizer_gives_same_graph(self, schema_ddl):
        regex = DependencyAnalyzer().analyze(schema_ddl)
        scanning = DependencyAnalyzer({'tokenizer': 'scanning'}).analyze(schema_ddl)
        assert regex == scanning

    def test_noforce_view_keeps_its_tables_used(self):
        """Extra words before VIEW do not hide the view or its sources."""
        graph = DependencyAnalyzer().analyze(
            "CREATE TABLE A (x NUMBER); CREATE OR REPLACE NOFORCE VIEW V AS SELECT x FROM A;"
        )
        assert ObjectId('V', ObjectKind.VIEW) in graph.objects
        assert graph.unused_tables() == set()

    def test_compound_trigger_body_is_extracted(self):
        """DML in later timing points of a compound trigger is attributed to it."""
        graph = DependencyAnalyzer().analyze(
            "CREATE OR REPLACE TRIGGER trg FOR INSERT ON orders COMPOUND TRIGGER\n"
            "  BEFORE STATEMENT IS BEGIN NULL; END BEFORE STATEMENT;\n"
            "  AFTER EACH ROW IS BEGIN INSERT INTO log_t VALUES (1); END AFTER EACH ROW;\n"
            "END trg;\n"
        )
        assert Edge(ObjectId('TRG', ObjectKind.TRIGGER), 'LOG_T', DependencyKind.DML_WRITE) in graph.edges


class TestParallelAnalysis:
    """Test the process-pool mode."""

    def test_parallel_matches_sequential(self, schema_ddl):
        """Sequential and parallel analysis yield set-equal graphs."""
        analyzer = DependencyAnalyzer(PARALLEL_CONFIG)
        sequential = analyzer.analyze_text(schema_ddl, parallel=False)
        parallel = analyzer.analyze_text(schema_ddl, parallel=True)
        assert parallel.graph == sequential.graph
        assert parallel.statements == sequential.statements

    def test_parallel_mode_from_config(self, schema_ddl):
        config = dict(PARALLEL_CONFIG, mode='parallel', token_batch_size=1000)
        graph = DependencyAnalyzer(config).analyze(schema_ddl)
        assert graph == DependencyAnalyzer().analyze(schema_ddl)

    def test_parallel_empty_input(self):
        result = DependencyAnalyzer(PARALLEL_CONFIG).analyze_text("", parallel=True)
        assert result.statements == 0
        assert result.graph.summary() == "DependencyGraph: 0 tables, 0 objects, 0 edges"


class CancelAfter(CancellationToken):
    """Token that reports cancellation once it has been polled a number of times."""

    def __init__(self, polls):
        super().__init__()
        self.remaining = polls

    @property
    def cancelled(self):
        if self.remaining <= 0:
            return True
        self.remaining -= 1
        return False


class TestCancellation:
    """Test cooperative cancellation."""

    def test_token(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel()
        assert token.cancelled

    @pytest.mark.parametrize("parallel", [False, True])
    def test_cancelled_before_start(self, schema_ddl, parallel):
        """A cancelled run returns a consistent partial graph."""
        token = CancellationToken()
        token.cancel()
        result = DependencyAnalyzer(PARALLEL_CONFIG).analyze_text(
            schema_ddl, parallel=parallel, cancel_token=token
        )
        assert result.cancelled
        assert not result.graph.objects
        for edge in result.graph.edges:
            assert result.graph.has_table(edge.target)

    def test_cancelled_mid_run_sequential(self, schema_ddl):
        """Statements extracted before cancellation stay in a consistent graph."""
        result = DependencyAnalyzer().analyze_text(
            schema_ddl, parallel=False, cancel_token=CancelAfter(3)
        )
        assert result.cancelled
        assert result.graph.objects == {
            ObjectId('CUSTOMERS', ObjectKind.TABLE),
            ObjectId('ORDERS', ObjectKind.TABLE),
            ObjectId('ORDER_LINES', ObjectKind.TABLE),
        }
        assert result.graph.edges
        for edge in result.graph.edges:
            assert result.graph.has_table(edge.target)

    def test_cancelled_mid_run_parallel(self, schema_ddl):
        """Batches merged before cancellation stay in a consistent graph."""
        config = dict(PARALLEL_CONFIG, token_batch_size=100000)
        result = DependencyAnalyzer(config).analyze_text(
            schema_ddl, parallel=True, cancel_token=CancelAfter(2)
        )
        assert result.cancelled
        assert 0 < len(result.graph.objects) < 11
        for edge in result.graph.edges:
            assert result.graph.has_table(edge.target)
            assert edge.source in result.graph.objects


class TestInput:
    """Test reading DDL files."""

    def test_analyze_file(self, ddl_file, schema_ddl):
        result = DependencyAnalyzer().analyze_file(ddl_file)
        assert result.file_path == str(ddl_file)
        assert result.graph == DependencyAnalyzer().analyze(schema_ddl)

    def test_non_utf8_file(self, tmp_path):
        """Files in legacy encodings are decoded instead of rejected."""
        path = tmp_path / "legacy.sql"
        path.write_bytes("CREATE TABLE caf\xe9 (a NUMBER);".encode('latin-1'))
        text = read_ddl_file(path)
        assert text.startswith("CREATE TABLE caf")
        assert len(DependencyAnalyzer().analyze(text).tables) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputError, match="not found"):
            read_ddl_file(tmp_path / "missing.sql")

    def test_size_limit(self, ddl_file):
        with pytest.raises(InputError, match="limit"):
            read_ddl_file(ddl_file, max_size_mb=0.000001)

    def test_unexpected_extension_warns(self, tmp_path, caplog):
        path = tmp_path / "schema.txt"
        path.write_text("CREATE TABLE t (a NUMBER);", encoding='utf-8')
        with caplog.at_level(logging.WARNING):
            text = read_ddl_file(path, extensions=['.sql', '.ddl'])
        assert text.startswith("CREATE TABLE")
        assert "Unexpected extension '.txt'" in caplog.text

    def test_listed_extension_is_quiet(self, ddl_file, caplog):
        with caplog.at_level(logging.WARNING):
            read_ddl_file(ddl_file, extensions=['.SQL'])
        assert "Unexpected extension" not in caplog.text
