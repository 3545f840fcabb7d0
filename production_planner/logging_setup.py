import logging
import logging.handlers
import time
from pathlib import Path

from production_planner.config import config

class Logger:
    """Logging manager for the Production Planner.

    Every component logger writes to a rotating file named after its top-level
    package (production_planner.log, batch.log, run_forecast.log) and, when
    enabled, to the console.
    """

    _instance = None
    _loggers = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Logger, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._log_config = config.log_config
        self._log_dir = Path(self._log_config['directory'])
        self._formatter = logging.Formatter(self._log_config['format'])
        self._level = getattr(logging, self._log_config['level'].upper(), logging.INFO)

        if self._log_config['file_output']:
            self._log_dir.mkdir(parents=True, exist_ok=True)

        self._initialized = True

    def _handlers(self, name):
        if self._log_config['file_output']:
            yield logging.handlers.RotatingFileHandler(
                self._log_dir / f"{name.split('.')[0]}.log",
                maxBytes=self._log_config['max_size_mb'] * 1024 * 1024,
                backupCount=self._log_config['backup_count']
            )
        if self._log_config['console_output']:
            yield logging.StreamHandler()

    def get_logger(self, name):
        """Get a configured logger.

        Args:
            name: Logger name, usually the module's __name__

        Returns:
            logging.Logger
        """
        if name in self._loggers:
            return self._loggers[name]

        logger = logging.getLogger(name)
        logger.setLevel(self._level)
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
        for handler in self._handlers(name):
            handler.setFormatter(self._formatter)
            logger.addHandler(handler)
        logger.propagate = False

        self._loggers[name] = logger
        return logger

    def log_exception(self, logger_name, exception, message=None):
        """Log an exception with its stack trace."""
        text = f"{message}: {exception}" if message else str(exception)
        self.get_logger(logger_name).error(text, exc_info=exception)

    def batch_start_log(self, process_name, additional_info=None):
        """Log the start of a forecasting or mining run.

        Returns:
            Dictionary to hand back to batch_end_log
        """
        info = f" ({additional_info})" if additional_info else ''
        self.get_logger('batch').info(f"Starting {process_name}{info}")
        return {'process_name': process_name, 'started': time.monotonic()}

    def batch_end_log(self, log_info, success=True, result_info=None):
        """Log the end of a run with its duration and results."""
        batch_logger = self.get_logger('batch')
        process_name = log_info.get('process_name', 'Unknown')
        elapsed = time.monotonic() - log_info.get('started', time.monotonic())

        if success:
            batch_logger.info(f"Completed {process_name} in {elapsed:.2f}s")
        else:
            batch_logger.error(f"Failed {process_name} after {elapsed:.2f}s")

        if result_info:
            batch_logger.info(f"{process_name} results: {result_info}")

# Global logger instance
logger = Logger()

def get_logger(name):
    """Get a logger with the specified name."""
    return logger.get_logger(name)

def log_exception(logger_name, exception, message=None):
    """Log an exception with stack trace."""
    logger.log_exception(logger_name, exception, message)
