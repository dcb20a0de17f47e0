"""
Logging and Error Handling System

This module provides centralized logging configuration and error tracking
utilities for the imgmigrate pipeline.
"""

import logging
import logging.handlers
import os
import sys
import threading
from datetime import datetime
from typing import Optional, Dict, Any, List
import traceback
from pathlib import Path


APP_NAME = "imgmigrate"


class MigrationLogger:
    """
    Centralized logging system for imgmigrate.

    Provides console progress output, a rotating detailed log file and a
    separate rotating error log.
    """

    def __init__(self, log_dir: str = "logs", app_name: str = APP_NAME):
        """
        Initialize the logging system.

        Args:
            log_dir: Directory to store log files
            app_name: Name of the application logger
        """
        self.log_dir = Path(log_dir)
        self.app_name = app_name
        self.loggers: Dict[str, logging.Logger] = {}

        self.log_dir.mkdir(parents=True, exist_ok=True)

    def setup_logger(self, level: int = logging.INFO) -> logging.Logger:
        """
        Set up the main application logger with file and console handlers.

        Args:
            level: Console logging level (default: INFO)

        Returns:
            Configured logger instance
        """
        logger = logging.getLogger(self.app_name)
        logger.setLevel(logging.DEBUG)

        # Prevent duplicate handlers
        if logger.handlers:
            for handler in logger.handlers:
                if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                    handler.setLevel(level)
            self.loggers['main'] = logger
            return logger

        detailed_formatter = logging.Formatter(
            '%(asctime)s | %(name)s | %(levelname)s | %(threadName)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        console_formatter = logging.Formatter(
            '%(asctime)s | %(levelname)s | %(message)s',
            datefmt='%H:%M:%S'
        )

        # File handler with rotation
        log_file = self.log_dir / f"{self.app_name}.log"
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(detailed_formatter)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(console_formatter)

        error_file = self.log_dir / f"{self.app_name}_errors.log"
        error_handler = logging.handlers.RotatingFileHandler(
            error_file,
            maxBytes=5*1024*1024,  # 5MB
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(detailed_formatter)

        logger.addHandler(file_handler)
        logger.addHandler(console_handler)
        logger.addHandler(error_handler)

        self.loggers['main'] = logger
        return logger

    def get_logger(self, name: str) -> logging.Logger:
        """
        Get a child logger for a specific component.

        Args:
            name: Name of the module/component

        Returns:
            Logger instance for the component
        """
        full_name = f"{self.app_name}.{name}"

        if full_name not in self.loggers:
            self.loggers[full_name] = logging.getLogger(full_name)

        return self.loggers[full_name]

    def log_system_info(self):
        """Log system information for debugging."""
        logger = self.get_logger('system')

        logger.debug("=== imgmigrate started ===")
        logger.debug(f"Python version: {sys.version}")
        logger.debug(f"Platform: {sys.platform}")
        logger.debug(f"Working directory: {os.getcwd()}")
        logger.debug(f"Log directory: {self.log_dir.absolute()}")


class ErrorTracker:
    """
    Tracks per-reference failures that were absorbed during a run.

    Safe to call from several worker threads at once.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.errors: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def log_error(self,
                  error: Exception,
                  context: Optional[str] = None,
                  url: Optional[str] = None,
                  additional_info: Optional[Dict[str, Any]] = None) -> str:
        """
        Log an error with context information.

        Args:
            error: The exception that occurred
            context: Context where the error occurred
            url: Reference being processed when the error occurred
            additional_info: Additional information about the error

        Returns:
            Error ID for tracking
        """
        with self._lock:
            error_id = f"ERR_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{len(self.errors):03d}"
            error_data = {
                'id': error_id,
                'timestamp': datetime.now(),
                'type': type(error).__name__,
                'message': str(error),
                'context': context,
                'url': url,
                'traceback': traceback.format_exc(),
                'additional_info': additional_info or {}
            }
            self.errors.append(error_data)

        log_message = f"[{error_id}] {error_data['type']}: {error_data['message']}"
        if context:
            log_message += f" (Context: {context})"

        self.logger.warning(log_message)
        self.logger.debug(f"[{error_id}] Full traceback:\n{error_data['traceback']}")

        return error_id

    def get_error_summary(self) -> Dict[str, Any]:
        """
        Get a summary of all tracked errors.

        Returns:
            Dictionary with error statistics and details
        """
        with self._lock:
            errors = list(self.errors)
        return {
            'total_errors': len(errors),
            'error_types': self._count_error_types(errors),
            'recent_errors': errors[-5:],
        }

    @staticmethod
    def _count_error_types(errors: List[Dict[str, Any]]) -> Dict[str, int]:
        """Count errors by type."""
        type_counts: Dict[str, int] = {}
        for error in errors:
            type_counts[error['type']] = type_counts.get(error['type'], 0) + 1
        return type_counts

    def save_error_report(self, output_path: str):
        """
        Save a detailed error report to a file.

        Args:
            output_path: Path where the report should be saved
        """
        with self._lock:
            errors = list(self.errors)
        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write("IMGMIGRATE ERROR REPORT\n")
                f.write("=" * 50 + "\n\n")
                f.write(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
                f.write(f"Total Errors: {len(errors)}\n\n")

                for error_type, count in sorted(self._count_error_types(errors).items()):
                    f.write(f"{error_type}: {count}\n")

                if errors:
                    f.write("\nERRORS:\n")
                    f.write("-" * 30 + "\n")
                    for error in errors:
                        f.write(f"\n[{error['id']}] {error['timestamp']}\n")
                        f.write(f"Type: {error['type']}\n")
                        f.write(f"Message: {error['message']}\n")
                        if error['context']:
                            f.write(f"Context: {error['context']}\n")
                        if error['url']:
                            f.write(f"URL: {error['url']}\n")
                        f.write("-" * 50 + "\n")

            self.logger.info(f"Error report saved to: {output_path}")

        except OSError as e:
            self.logger.error(f"Failed to save error report: {e}")


# Global logger instance
_logger_instance: Optional[MigrationLogger] = None


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Name of the component (optional)

    Returns:
        Logger instance; the application logger when no name is given
    """
    if _logger_instance is None:
        return logging.getLogger(f"{APP_NAME}.{name}" if name else APP_NAME)

    if name:
        return _logger_instance.get_logger(name)
    return _logger_instance.loggers.get('main') or logging.getLogger(APP_NAME)


def initialize_logging(log_dir: str = "logs", level: int = logging.INFO) -> MigrationLogger:
    """
    Initialize the global logging system.

    Args:
        log_dir: Directory for log files
        level: Console logging level
    """
    global _logger_instance
    _logger_instance = MigrationLogger(log_dir)
    _logger_instance.setup_logger(level)
    _logger_instance.log_system_info()
    return _logger_instance
