#!/usr/bin/env python3
"""
Oracle DDL Dependency Analysis Tool - Main CLI Interface

This is the main entry point for the DDL dependency analysis tool,
providing command-line interface for all analysis operations.
"""

import argparse
import sys
import logging
import signal
import time
from pathlib import Path
from datetime import datetime, timedelta
from typing import List, Optional

import psutil

from ddl_dependency_parser.analyzer import CancellationToken, DependencyAnalyzer, InputError
from ddl_dependency_parser.config.config_loader import ConfigLoader, ConfigError
from ddl_dependency_parser.graph.dependency_graph import DependencyGraph
from ddl_dependency_parser.graph.report_generator import (
    render_dot, render_json, render_summary, write_edges_csv, write_edges_parquet,
)


class DependencyAnalysisCLI:
    """Main command-line interface for the dependency analysis tool."""

    def __init__(self):
        self.logger = logging.getLogger('DependencyAnalysisCLI')
        self.config: Optional[ConfigLoader] = None
        self.start_time = None
        self.cancel_token = CancellationToken()

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _setup_logging(self, level: str = 'INFO', log_format: Optional[str] = None,
                       directory: Optional[str] = None) -> logging.Logger:
        """Setup logging configuration."""
        log_format = log_format or '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
        if directory:
            log_dir = Path(directory)
            log_dir.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(
                log_dir / f'ddl_dependency_analysis_{datetime.now():%Y%m%d_%H%M%S}.log'
            ))
        logging.basicConfig(
            level=getattr(logging, level.upper()),
            format=log_format,
            handlers=handlers
        )
        logging.getLogger().setLevel(getattr(logging, level.upper()))
        return self.logger

    def _signal_handler(self, signum, frame):
        """Handle interrupt signals by cancelling the running analysis."""
        self.logger.warning(f"Received signal {signum}, cancelling analysis...")
        self.cancel_token.cancel()

    def main(self, argv: Optional[List[str]] = None) -> int:
        """
        Parse arguments and run the selected command.

        Returns:
            Process exit code
        """
        parser = self._create_parser()
        args = parser.parse_args(argv)

        if not hasattr(args, 'func'):
            parser.print_help()
            return 1

        try:
            self.config = ConfigLoader(getattr(args, 'config', None))
        except ConfigError as e:
            self._setup_logging(args.log_level or 'INFO')
            self.logger.error(f"Configuration error: {e}")
            return 1

        level = args.log_level or ('DEBUG' if args.verbose else self.config.get('logging.level', 'INFO'))
        self._setup_logging(
            level,
            self.config.get('logging.format'),
            self.config.get('logging.directory')
        )

        try:
            return args.func(args)
        except KeyboardInterrupt:
            self.logger.error("Operation interrupted by user")
            return 1
        except InputError as e:
            self.logger.error(f"Input error: {e}")
            return 1
        except Exception as e:
            self.logger.error(f"Fatal error: {str(e)}", exc_info=args.debug)
            return 1

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser with all commands."""
        parser = argparse.ArgumentParser(
            prog='oracle-ddl-deps',
            description='Extract table dependency graphs from Oracle DDL scripts',
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Analyze a schema dump and export DOT and JSON
  %(prog)s analyze --ddl-file schema.sql --output results/ --dot --json

  # Which objects use a table, directly or indirectly
  %(prog)s query --ddl-file schema.sql --table ORDERS --users

  # Validate configuration
  %(prog)s validate --config config/
            """
        )

        parser.add_argument('-v', '--verbose', action='store_true',
                            help='Enable verbose output')
        parser.add_argument('--debug', action='store_true',
                            help='Enable debug mode with full stack traces')
        parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                            default=None, help='Set logging level (default: from configuration)')

        subparsers = parser.add_subparsers(title='commands', dest='command',
                                           help='Available commands')

        self._add_analyze_parser(subparsers)
        self._add_query_parser(subparsers)
        self._add_validate_parser(subparsers)

        return parser

    def _add_analyze_parser(self, subparsers):
        """Add analyze command parser."""
        parser = subparsers.add_parser(
            'analyze',
            help='Build the dependency graph of a DDL script',
            description='Analyze a DDL script and report its dependency graph'
        )

        parser.add_argument('--ddl-file', required=True, type=Path,
                            help='Path to the DDL script')
        parser.add_argument('--output', type=Path, default=Path('.'),
                            help='Output directory for exported files (default: .)')
        parser.add_argument('--dot', action='store_true', help='Write a Graphviz DOT file')
        parser.add_argument('--json', action='store_true', help='Write a JSON file')
        parser.add_argument('--csv', action='store_true', help='Write the edge table as CSV')
        parser.add_argument('--parquet', action='store_true', help='Write the edge table as Parquet')
        parser.add_argument('--parallel', action='store_true',
                            help='Use the process pool instead of a single pass')
        parser.add_argument('--workers', type=int, default=None,
                            help='Number of worker processes (default: one per CPU)')
        parser.add_argument('--memory-limit', type=int, default=1024,
                            help='Recommended available memory in MB (default: 1024)')
        parser.add_argument('--config', type=Path, default=None,
                            help='Configuration directory (default: packaged configuration)')

        parser.set_defaults(func=self.analyze_command)

    def _add_query_parser(self, subparsers):
        """Add query command parser."""
        parser = subparsers.add_parser(
            'query',
            help='Run a closure query for one table',
            description='Report dependent tables, dependencies or using objects of a table'
        )

        parser.add_argument('--ddl-file', required=True, type=Path,
                            help='Path to the DDL script')
        parser.add_argument('--table', required=True, help='Table name')
        group = parser.add_mutually_exclusive_group()
        group.add_argument('--dependents', dest='query', action='store_const', const='dependents',
                           help='Tables reachable by following foreign keys forward (default)')
        group.add_argument('--dependencies', dest='query', action='store_const', const='dependencies',
                           help='Tables whose foreign keys lead to the table')
        group.add_argument('--users', dest='query', action='store_const', const='users',
                           help='Objects using the table directly or indirectly')
        parser.add_argument('--config', type=Path, default=None,
                            help='Configuration directory (default: packaged configuration)')
        parser.set_defaults(func=self.query_command, query='dependents')

    def _add_validate_parser(self, subparsers):
        """Add validate command parser."""
        parser = subparsers.add_parser(
            'validate',
            help='Validate configuration',
            description='Verify configuration files'
        )

        parser.add_argument('--config', type=Path, default=None,
                            help='Configuration directory')

        parser.set_defaults(func=self.validate_command)

    def analyze_command(self, args) -> int:
        """Execute analysis command."""
        self.logger.info("=" * 60)
        self.logger.info("Starting DDL Dependency Analysis")
        self.logger.info("=" * 60)
        self.start_time = time.time()

        self._check_memory(args.memory_limit)

        analysis_config = self.config.get_analysis_config()
        if args.workers:
            analysis_config['workers'] = args.workers
        analyzer = DependencyAnalyzer(analysis_config)

        result = analyzer.analyze_file(
            args.ddl_file,
            parallel=True if args.parallel else None,
            cancel_token=self.cancel_token,
            max_size_mb=self.config.get('input.max_file_size_mb'),
            extensions=self.config.get('input.extensions')
        )

        print(render_summary(result.graph))
        self._save_outputs(result.graph, args)

        elapsed = time.time() - self.start_time
        self.logger.info("=" * 60)
        self.logger.info(f"Analysis completed in {timedelta(seconds=int(elapsed))}")
        self.logger.info("=" * 60)
        return 1 if result.cancelled else 0

    def query_command(self, args) -> int:
        """Execute query command."""
        analyzer = DependencyAnalyzer(self.config.get_analysis_config())
        result = analyzer.analyze_file(
            args.ddl_file,
            cancel_token=self.cancel_token,
            max_size_mb=self.config.get('input.max_file_size_mb'),
            extensions=self.config.get('input.extensions')
        )
        graph = result.graph

        if not graph.has_table(args.table):
            self.logger.warning(f"Table '{args.table}' does not occur in {args.ddl_file}")

        if args.query == 'users':
            names = sorted(str(obj) for obj in graph.find_objects_using_table(args.table))
        elif args.query == 'dependencies':
            names = sorted(graph.find_dependencies(args.table), key=str.upper)
        else:
            names = sorted(graph.find_dependent_tables(args.table), key=str.upper)

        print(f"== {args.query.upper()} of {args.table} ==")
        for name in names:
            print(f"  {name}")
        if not names:
            print("  (none)")
        return 0

    def validate_command(self, args) -> int:
        """Execute validate command."""
        self.logger.info("Validating configuration...")

        validation_result = self.config.validate_all()
        if validation_result.is_valid:
            self.logger.info("Configuration is valid")
        else:
            self.logger.error("Configuration validation failed:")
            for error in validation_result.errors:
                self.logger.error(f"  - {error}")

        if validation_result.warnings:
            self.logger.warning("Warnings:")
            for warning in validation_result.warnings:
                self.logger.warning(f"  - {warning}")

        return 0 if validation_result.is_valid else 1

    def _check_memory(self, limit_mb: int):
        """Check available memory."""
        memory = psutil.virtual_memory()
        available_mb = memory.available / 1024 / 1024

        if available_mb < limit_mb:
            self.logger.warning(
                f"Low memory warning: {available_mb:.0f}MB available, "
                f"{limit_mb}MB recommended"
            )

    def _save_outputs(self, graph: DependencyGraph, args) -> None:
        """Write the requested export files."""
        output_dir: Path = args.output
        stem = args.ddl_file.stem

        if args.dot or args.json:
            output_dir.mkdir(parents=True, exist_ok=True)
        if args.dot:
            dot_path = output_dir / f"{stem}.dot"
            dot_path.write_text(render_dot(graph), encoding='utf-8')
            self.logger.info(f"DOT written: {dot_path}")
        if args.json:
            json_path = output_dir / f"{stem}.json"
            json_path.write_text(render_json(graph), encoding='utf-8')
            self.logger.info(f"JSON written: {json_path}")
        if args.csv:
            write_edges_csv(graph, output_dir / f"{stem}_edges.csv")
        if args.parquet:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            write_edges_parquet(graph, output_dir / f"dependency_graph_{timestamp}.parquet")


def main():
    """Main entry point."""
    cli = DependencyAnalysisCLI()
    sys.exit(cli.main())


if __name__ == '__main__':
    main()
