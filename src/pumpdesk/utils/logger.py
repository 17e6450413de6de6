import logging
from datetime import datetime
import os

class TradingLogger:
    """Desk logger: always writes a timestamped file, optionally mirrors INFO to the console"""

    def __init__(self, name: str = "pumpdesk", log_dir: str = None, console_output: bool = False):
        self.log_dir = log_dir or os.getenv("LOG_DIR", "data/logs")
        os.makedirs(self.log_dir, exist_ok=True)

        # Create logger
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)

        # Loggers are process-wide; only attach handlers once per name
        if not self.logger.handlers:
            self._setup_handlers(console_output)

    def _setup_handlers(self, console_output: bool):
        # Console handler (only if console_output is True)
        if console_output:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_format = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
            console_handler.setFormatter(console_format)
            self.logger.addHandler(console_handler)

        # File handler (always enabled)
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        file_handler = logging.FileHandler(
            os.path.join(self.log_dir, f'{self.logger.name}_{timestamp}.log')
        )
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        file_handler.setFormatter(file_format)
        self.logger.addHandler(file_handler)

    def critical(self, message: str) -> None:
        """Log critical message"""
        self.logger.critical(message)

    def debug(self, message: str) -> None:
        """Log debug message"""
        self.logger.debug(message)

    def info(self, message: str) -> None:
        """Log info message"""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log warning message"""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log error message"""
        self.logger.error(message)
