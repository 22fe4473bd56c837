"""
Logging utility for the staff claims backend.
"""
import logging
import sys
from typing import Optional, Dict, Any
from colorama import Fore, Style, init
import structlog

# Initialize colorama for cross-platform colored output
init(autoreset=True)


class ColorizedFormatter(logging.Formatter):
    """Custom formatter with colorized output."""

    COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.MAGENTA + Style.BRIGHT,
    }

    def format(self, record):
        # Add color to the level name
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{Style.RESET_ALL}"

        # Add color to the message for errors and warnings
        if record.levelno >= logging.WARNING:
            record.msg = f"{Fore.RED}{record.msg}{Style.RESET_ALL}"
        elif record.levelno == logging.INFO:
            record.msg = f"{Fore.GREEN}{record.msg}{Style.RESET_ALL}"

        return super().format(record)


def setup_logger(
    name: str = "claims_backend",
    level: str = "INFO",
    log_file: Optional[str] = None
) -> structlog.BoundLogger:
    """
    Set up structured logging with colorized console output.

    Args:
        name: Logger name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging to file

    Returns:
        Configured structured logger
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if log_file else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger(name)

    stdlib_logger = logging.getLogger(name)
    stdlib_logger.setLevel(getattr(logging, level.upper()))

    # Avoid stacking handlers when the app factory runs more than once
    if not stdlib_logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_formatter = ColorizedFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(console_formatter)
        stdlib_logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            stdlib_logger.addHandler(file_handler)

    return logger


def get_logger(name: str = "claims_backend") -> structlog.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name

    Returns:
        Configured structured logger
    """
    return structlog.get_logger(name)


class AuditLogger:
    """Audit trail for authorization decisions and degraded writes."""

    def __init__(self, logger: structlog.BoundLogger):
        self.logger = logger
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'denied': 0,
            'skipped_accounts': 0,
            'best_effort_failures': 0,
            'partial_failures': 0,
            'capabilities': {}
        }

    def log_denied(self, caller_uid: Optional[str], capability: str, operation: str):
        """Log an authorization denial with the attempted capability."""
        self.stats['denied'] += 1
        denied = self.stats['capabilities']
        denied[capability] = denied.get(capability, 0) + 1
        self.logger.warning(
            "Authorization denied",
            caller_uid=caller_uid,
            capability=capability,
            operation=operation
        )

    def log_skipped_account(self, uid: str, error: Exception):
        """Log an account dropped from a directory listing."""
        self.stats['skipped_accounts'] += 1
        self.logger.warning(
            "Skipping account during directory listing",
            uid=uid,
            error=str(error),
            error_type=type(error).__name__
        )

    def log_best_effort_failure(self, operation: str, uid: str, error: Exception):
        """Log a secondary write that failed without failing the request."""
        self.stats['best_effort_failures'] += 1
        self.logger.warning(
            "Best-effort write failed (non-critical)",
            operation=operation,
            uid=uid,
            error=str(error)
        )

    def log_partial_failure(self, uid: str, error: Exception):
        """Log an account created without its claims attached."""
        self.stats['partial_failures'] += 1
        self.logger.error(
            "Account created but claims were not attached",
            uid=uid,
            error=str(error),
            error_type=type(error).__name__
        )

    def print_summary(self):
        """Log a summary of the audit counters."""
        self.logger.info("Audit summary", **self.stats)

        print(f"\n{Fore.CYAN}{'='*50}")
        print(f"{Fore.WHITE}AUDIT SUMMARY")
        print(f"{Fore.CYAN}{'='*50}")
        print(f"{Fore.RED}✗ Denied requests: {self.stats['denied']}")
        print(f"{Fore.YELLOW}⚠ Skipped accounts: {self.stats['skipped_accounts']}")
        print(f"{Fore.YELLOW}⚠ Best-effort failures: {self.stats['best_effort_failures']}")
        print(f"{Fore.RED}✗ Partial failures: {self.stats['partial_failures']}")

        if self.stats['capabilities']:
            print(f"\n{Fore.WHITE}Denied by capability:")
            for capability, count in self.stats['capabilities'].items():
                print(f"  {Fore.CYAN}{capability}: {count}")

        print(f"{Fore.CYAN}{'='*50}\n")
