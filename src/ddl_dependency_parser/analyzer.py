"""
Analysis orchestration for Oracle DDL scripts.

Runs tokenization, segmentation and extraction either in one sequential
pass or with data-parallel batching over a process pool, and collects the
results into a DependencyGraph.
"""

import os
import time
import logging
import threading
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import chardet
from tqdm import tqdm

from ddl_dependency_parser.graph.dependency_graph import DependencyGraph, ObjectId
from ddl_dependency_parser.parsers.dependency_extractor import DependencyExtractor
from ddl_dependency_parser.parsers.header_parser import HeaderParser
from ddl_dependency_parser.parsers.statement_segmenter import Statement, StatementSegmenter
from ddl_dependency_parser.parsers.tokenizer import Token, get_tokenizer


DEFAULT_ANALYSIS_CONFIG: Dict[str, Any] = {
    'mode': 'sequential',
    'workers': None,
    'token_batch_size': 1000,
    'statement_batch_size': 50,
    'tokenizer': 'regex',
    'show_progress': False,
    'header_stop_words': None,
}


class InputError(Exception):
    """Raised when a DDL input file cannot be used."""
    pass


class CancellationToken:
    """Thread-safe cancellation flag polled by a running analysis."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class AnalysisResult:
    """Outcome of one analysis run."""
    graph: DependencyGraph
    statements: int = 0
    dropped: int = 0
    elapsed: float = 0.0
    cancelled: bool = False
    file_path: Optional[str] = None


def read_ddl_file(file_path: Union[str, Path], max_size_mb: Optional[float] = None,
                  extensions: Optional[Sequence[str]] = None) -> str:
    """
    Read a DDL script with automatic encoding detection.

    UTF-8 is tried first, then the encoding chardet detects, then latin-1
    with replacement characters.

    Args:
        file_path: Path to the script
        max_size_mb: Optional size limit
        extensions: Expected file suffixes; other suffixes are read with a warning

    Returns:
        Script text

    Raises:
        InputError: If the file is missing, unreadable or too large
    """
    logger = logging.getLogger('DdlFileReader')
    path = Path(file_path)
    if not path.is_file():
        raise InputError(f"DDL file not found: {path}")

    if extensions and path.suffix.lower() not in {ext.lower() for ext in extensions}:
        logger.warning(f"Unexpected extension '{path.suffix}' for DDL file {path}")

    size_mb = path.stat().st_size / 1024 / 1024
    if max_size_mb and size_mb > max_size_mb:
        raise InputError(f"DDL file {path} is {size_mb:.1f}MB, limit is {max_size_mb}MB")

    try:
        raw_data = path.read_bytes()
    except OSError as e:
        raise InputError(f"Failed to read {path}: {e}")

    try:
        return raw_data.decode('utf-8')
    except UnicodeDecodeError:
        pass

    detected = chardet.detect(raw_data)
    encoding = detected.get('encoding') or 'latin-1'
    confidence = detected.get('confidence') or 0

    if confidence < 0.7:
        logger.warning(
            f"Low confidence ({confidence:.2f}) in encoding detection "
            f"for {path}. Detected: {encoding}"
        )

    try:
        return raw_data.decode(encoding)
    except (UnicodeDecodeError, LookupError):
        logger.warning(f"Failed to decode {path} with {encoding}, using latin-1")
        return raw_data.decode('latin-1', errors='replace')


def populate_graph(graph: DependencyGraph, tokens: Sequence[Token], statements: Sequence[Statement],
                   extractor: DependencyExtractor) -> int:
    """
    Add named statements and their references to a graph.

    Returns:
        Number of statements dropped for lack of a name
    """
    dropped = 0
    for statement in statements:
        if not _add_statement(graph, tokens, statement, extractor):
            dropped += 1
    return dropped


def _add_statement(graph: DependencyGraph, tokens: Sequence[Token], statement: Statement,
                   extractor: DependencyExtractor) -> bool:
    if not statement.name:
        logging.getLogger('DependencyAnalyzer').debug(
            f"Dropping unnamed {statement.kind.value} at line {statement.start_line}"
        )
        return False
    source = ObjectId(statement.name, statement.kind)
    graph.add_object(source)
    for reference in extractor.extract(tokens, statement):
        graph.add_edge(source, reference.name, reference.kind)
    return True


# ---------- process pool workers ----------

_worker_tokens: Sequence[Token] = ()
_worker_segmenter: Optional[StatementSegmenter] = None
_worker_extractor: Optional[DependencyExtractor] = None


def _init_worker(tokens: Sequence[Token], header_stop_words: Optional[List[str]]) -> None:
    """Pool initializer: ship the token list once per worker process."""
    global _worker_tokens, _worker_segmenter, _worker_extractor
    _worker_tokens = tokens
    _worker_segmenter = StatementSegmenter(HeaderParser(header_stop_words))
    _worker_extractor = DependencyExtractor()


def _find_candidates_batch(start: int, stop: int) -> List[Statement]:
    return _worker_segmenter.find_candidates(_worker_tokens, start, stop)


def _extract_batch(statements: List[Statement]) -> DependencyGraph:
    graph = DependencyGraph()
    populate_graph(graph, _worker_tokens, statements, _worker_extractor)
    return graph


class DependencyAnalyzer:
    """
    Builds a dependency graph from DDL text.

    Sequential and parallel modes produce set-equal graphs. Parallel mode
    segments token batches and extracts statement batches into per-worker
    local graphs, which are merged by set union.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the analyzer.

        Args:
            config: Analysis settings; see DEFAULT_ANALYSIS_CONFIG for keys
        """
        self.config = dict(DEFAULT_ANALYSIS_CONFIG)
        self.config.update({k: v for k, v in (config or {}).items() if v is not None})
        self.logger = logging.getLogger(self.__class__.__name__)

        self.tokenizer = get_tokenizer(self.config['tokenizer'])
        self.segmenter = StatementSegmenter(HeaderParser(self.config['header_stop_words']))
        self.extractor = DependencyExtractor()

    def analyze(self, text: str, parallel: Optional[bool] = None,
                cancel_token: Optional[CancellationToken] = None) -> DependencyGraph:
        """Analyze DDL text and return only the graph."""
        return self.analyze_text(text, parallel=parallel, cancel_token=cancel_token).graph

    def analyze_file(self, file_path: Union[str, Path], parallel: Optional[bool] = None,
                     cancel_token: Optional[CancellationToken] = None,
                     max_size_mb: Optional[float] = None,
                     extensions: Optional[Sequence[str]] = None) -> AnalysisResult:
        """
        Read and analyze a DDL file.

        Raises:
            InputError: If the file cannot be read
        """
        self.logger.info(f"Reading DDL file: {file_path}")
        text = read_ddl_file(file_path, max_size_mb=max_size_mb, extensions=extensions)
        result = self.analyze_text(text, parallel=parallel, cancel_token=cancel_token)
        result.file_path = str(file_path)
        return result

    def analyze_text(self, text: str, parallel: Optional[bool] = None,
                     cancel_token: Optional[CancellationToken] = None) -> AnalysisResult:
        """
        Analyze DDL text.

        Args:
            text: Complete DDL script
            parallel: Force a mode; defaults to the configured one
            cancel_token: Optional cooperative cancellation flag

        Returns:
            AnalysisResult holding the (possibly partial) graph
        """
        start_time = time.time()
        if parallel is None:
            parallel = self.config['mode'] == 'parallel'

        tokens = self.tokenizer.tokenize(text)
        if parallel:
            result = self._analyze_parallel(tokens, cancel_token)
        else:
            result = self._analyze_sequential(tokens, cancel_token)
        result.elapsed = time.time() - start_time

        if result.cancelled:
            self.logger.warning(f"Analysis cancelled, returning partial graph: {result.graph.summary()}")
        else:
            self.logger.info(
                f"Analyzed {result.statements} statements in {result.elapsed:.2f}s "
                f"({result.dropped} dropped): {result.graph.summary()}"
            )
        return result

    def _analyze_sequential(self, tokens: List[Token],
                            cancel_token: Optional[CancellationToken]) -> AnalysisResult:
        graph = DependencyGraph()
        statements = self.segmenter.segment(tokens)
        result = AnalysisResult(graph=graph, statements=len(statements))

        iterator = statements
        if self.config['show_progress']:
            iterator = tqdm(statements, desc="Extracting dependencies")

        for statement in iterator:
            if cancel_token is not None and cancel_token.cancelled:
                result.cancelled = True
                break
            if not _add_statement(graph, tokens, statement, self.extractor):
                result.dropped += 1
        return result

    def _analyze_parallel(self, tokens: List[Token],
                          cancel_token: Optional[CancellationToken]) -> AnalysisResult:
        graph = DependencyGraph()
        result = AnalysisResult(graph=graph)
        workers = self.config['workers'] or os.cpu_count() or 1
        token_batch = max(1, int(self.config['token_batch_size']))
        statement_batch = max(1, int(self.config['statement_batch_size']))
        show_progress = self.config['show_progress']

        executor = ProcessPoolExecutor(
            max_workers=workers,
            initializer=_init_worker,
            initargs=(tokens, self.config['header_stop_words']),
        )
        try:
            # Phase 1: statement boundary detection over token batches
            futures = [
                executor.submit(_find_candidates_batch, start, start + token_batch)
                for start in range(0, len(tokens), token_batch)
            ]
            self.logger.info(f"Submitted {len(futures)} token batches to {workers} workers")
            candidates: List[Statement] = []
            with tqdm(total=len(futures), desc="Segmenting", disable=not show_progress) as pbar:
                for future in as_completed(futures):
                    candidates.extend(future.result())
                    pbar.update(1)
                    if cancel_token is not None and cancel_token.cancelled:
                        result.cancelled = True
                        break
            if result.cancelled:
                return result

            statements = StatementSegmenter.select_non_overlapping(candidates)
            result.statements = len(statements)

            # Phase 2: extraction into per-worker local graphs
            batches = [statements[i:i + statement_batch] for i in range(0, len(statements), statement_batch)]
            futures = {executor.submit(_extract_batch, batch): len(batch) for batch in batches}
            with tqdm(total=len(statements), desc="Extracting dependencies",
                      disable=not show_progress) as pbar:
                for future in as_completed(futures):
                    graph.merge(future.result())
                    pbar.update(futures[future])
                    if cancel_token is not None and cancel_token.cancelled:
                        result.cancelled = True
                        break
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        if not result.cancelled:
            result.dropped = sum(1 for s in statements if not s.name)
        return result
