"""
Configuration loader module for the DDL dependency analysis tool.

This module provides functionality to load, validate, and access
configuration from YAML files with support for overrides and runtime updates.
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List, Union
from dataclasses import dataclass, field
import copy

from ddl_dependency_parser.parsers.tokenizer import TOKENIZERS


DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent
CONFIG_FILE = 'analysis.yaml'

ANALYSIS_MODES = ('sequential', 'parallel')
OUTPUT_FORMATS = ('summary', 'dot', 'json', 'csv', 'parquet')
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ConfigError(Exception):
    """Custom exception for configuration errors."""
    pass


class ConfigValidationError(ConfigError):
    """Exception raised when configuration validation fails."""
    pass


@dataclass
class ValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class ConfigLoader:
    """
    Loads and manages configuration from YAML files.

    This class provides:
    - Loading analysis.yaml (the packaged default when no directory is given)
    - Environment-specific overrides from environments/<env>/analysis.yaml
    - Validation of configuration structure
    - Dotted access and runtime updates
    """

    REQUIRED_SECTIONS = ['analysis', 'parsing', 'input', 'logging', 'output']

    def __init__(self, config_dir: Optional[Union[str, Path]] = None,
                 environment: Optional[str] = None):
        """
        Initialize configuration loader.

        Args:
            config_dir: Directory containing analysis.yaml
            environment: Environment name for overrides (dev, test, prod)
        """
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.environment = environment or os.getenv('APP_ENV', 'default')
        self.logger = logging.getLogger(self.__class__.__name__)

        self._base_config: Dict[str, Any] = {}
        self._override_config: Dict[str, Any] = {}
        self._merged_config: Dict[str, Any] = {}

        self.load_all_configs()

    def load_all_configs(self) -> None:
        """Load, merge and validate the configuration."""
        try:
            self._base_config = self._load_yaml_file(self.config_dir / CONFIG_FILE)

            if self.environment and self.environment != 'default':
                self._load_environment_overrides()

            self._merged_config = self._deep_merge(self._base_config, self._override_config)

            validation_result = self.validate_all()
            if not validation_result.is_valid:
                raise ConfigValidationError(
                    f"Configuration validation failed: {'; '.join(validation_result.errors)}"
                )

        except ConfigError as e:
            self.logger.error(f"Failed to load configuration: {str(e)}")
            raise

    def _load_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """Load a single YAML file."""
        self.logger.debug(f"Trying to load config file at: {file_path.resolve()}")

        if not file_path.exists():
            raise ConfigError(f"Configuration file not found: {file_path.resolve()}")

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML file {file_path.name}: {str(e)}")
        except OSError as e:
            raise ConfigError(f"Failed to read file {file_path.name}: {str(e)}")

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigError(f"Configuration file {file_path.name} must hold a mapping")

        self.logger.info(f"Loaded configuration from {file_path}")
        return config

    def _load_environment_overrides(self) -> None:
        """Load the environment-specific override file if there is one."""
        override_file = self.config_dir / 'environments' / self.environment / CONFIG_FILE

        if not override_file.exists():
            self.logger.info(f"No environment overrides found for '{self.environment}'")
            return

        self._override_config = self._load_yaml_file(override_file)
        self.logger.info(f"Loaded override configuration for '{self.environment}'")

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = copy.deepcopy(base)

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = copy.deepcopy(value)

        return result

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path to configuration value
            default: Default value if key not found

        Returns:
            Configuration value or default

        Example:
            config.get('analysis.token_batch_size')
        """
        keys = key_path.split('.')
        value = self._merged_config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_analysis_config(self) -> Dict[str, Any]:
        """Settings consumed by DependencyAnalyzer."""
        analysis = dict(self.get('analysis') or {})
        analysis['header_stop_words'] = self.get('parsing.header_stop_words')
        return analysis

    def validate_all(self) -> ValidationResult:
        """Validate the merged configuration."""
        errors = []
        warnings = []

        for section in self.REQUIRED_SECTIONS:
            if section not in self._merged_config:
                errors.append(f"Missing required section: {section}")

        for check in (self._validate_analysis, self._validate_parsing,
                      self._validate_input, self._validate_logging, self._validate_output):
            result = check()
            errors.extend(result.errors)
            warnings.extend(result.warnings)

        return ValidationResult(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings
        )

    def _validate_analysis(self) -> ValidationResult:
        errors = []
        warnings = []
        config = self.get('analysis', {}) or {}

        mode = config.get('mode', 'sequential')
        if mode not in ANALYSIS_MODES:
            errors.append(f"Invalid analysis mode '{mode}', expected one of: {', '.join(ANALYSIS_MODES)}")

        workers = config.get('workers')
        if workers is not None and (not isinstance(workers, int) or workers <= 0):
            errors.append(f"Invalid worker count: {workers}")

        for key in ('token_batch_size', 'statement_batch_size'):
            value = config.get(key, 1)
            if not isinstance(value, int) or value <= 0:
                errors.append(f"Invalid value for analysis.{key}: {value}")

        tokenizer = config.get('tokenizer', 'regex')
        if str(tokenizer).lower() not in TOKENIZERS:
            errors.append(f"Unknown tokenizer '{tokenizer}'")

        if mode == 'parallel' and workers == 1:
            warnings.append("Parallel mode with a single worker is slower than sequential mode")

        return ValidationResult(is_valid=len(errors) == 0, errors=errors, warnings=warnings)

    def _validate_parsing(self) -> ValidationResult:
        errors = []
        stop_words = self.get('parsing.header_stop_words')
        if stop_words is not None:
            if not isinstance(stop_words, list) or not all(isinstance(w, str) for w in stop_words):
                errors.append("parsing.header_stop_words must be a list of words")
        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    def _validate_input(self) -> ValidationResult:
        warnings = []
        max_size = self.get('input.max_file_size_mb', 0) or 0
        if max_size <= 0:
            warnings.append("No maximum file size limit set")
        if not self.get('input.extensions'):
            warnings.append("No DDL file extensions configured")
        return ValidationResult(is_valid=True, warnings=warnings)

    def _validate_logging(self) -> ValidationResult:
        errors = []
        level = str(self.get('logging.level', 'INFO')).upper()
        if level not in LOG_LEVELS:
            errors.append(f"Invalid logging level: {level}")
        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    def _validate_output(self) -> ValidationResult:
        errors = []
        for fmt in self.get('output.formats', []) or []:
            if fmt not in OUTPUT_FORMATS:
                errors.append(f"Unknown output format: {fmt}")
        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    def update_config(self, key_path: str, value: Any) -> None:
        """
        Update configuration value at runtime.

        Args:
            key_path: Dot-separated path to configuration value
            value: New value to set
        """
        keys = key_path.split('.')
        config = self._merged_config

        for key in keys[:-1]:
            if key not in config or not isinstance(config[key], dict):
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

        self.logger.info(f"Updated configuration: {key_path} = {value}")

    def reload(self) -> None:
        """Reload configuration files, discarding runtime updates."""
        self._base_config = {}
        self._override_config = {}
        self._merged_config = {}

        self.load_all_configs()
        self.logger.info("Configuration reloaded")

    def export_config(self, output_path: Union[str, Path],
                      include_defaults: bool = True) -> None:
        """
        Export current configuration to file.

        Args:
            output_path: Path to export configuration
            include_defaults: Whether to include default values
        """
        config_to_export = self._merged_config if include_defaults else self._override_config

        with open(output_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_to_export, f, default_flow_style=False, sort_keys=True)

        self.logger.info(f"Exported configuration to {output_path}")

    def __repr__(self) -> str:
        return (
            f"ConfigLoader(config_dir='{self.config_dir}', "
            f"environment='{self.environment}')"
        )
