"""
Centralized Logger with Rich Console
====================================
Static logging facade shared by every lpcycle module.

Usage:
    from lpcycle.shared.system.logging import Logger

    Logger.info("[LEDGER] Fetching positions")
    Logger.success("[CYCLE] Position closed")
    Logger.warning("[RETRY] Attempt 2 failed")
    Logger.error("Something broke")
    Logger.section("Cycle 1")
"""

import os
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler

from rich.console import Console
from rich.text import Text

LOG_DIR = os.getenv(
    "LPCYCLE_LOG_DIR",
    os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(__file__)))), "logs"),
)

# Per-run session log file
_run_id = datetime.now().strftime("%Y%m%d_%H%M%S")

file_logger = logging.getLogger("lpcycle")
file_logger.setLevel(logging.DEBUG)
file_logger.propagate = False


def _attach_file_handler() -> None:
    """Attach the rotating run log once, on first use."""
    if file_logger.handlers:
        return
    os.makedirs(LOG_DIR, exist_ok=True)
    log_file = os.path.join(LOG_DIR, f"lpcycle_{_run_id}.log")
    handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    file_logger.addHandler(handler)


# =============================================================================
# SOURCE ICONS (for visual scanning)
# =============================================================================

SOURCE_ICONS = {
    "SYSTEM": "🛸",
    "CYCLE": "🔁",
    "LIFECYCLE": "💧",
    "RETRY": "⏳",
    "LEDGER": "📒",
    "BRIDGE": "🌉",
    "SIGNER": "🔐",
    "CONFIG": "⚙️",
}

LEVEL_STYLES = {
    "INFO": "cyan",
    "SUCCESS": "green bold",
    "WARNING": "yellow",
    "ERROR": "red bold",
    "DEBUG": "dim",
    "CRITICAL": "red bold reverse",
    "SECTION": "magenta bold",
}

_console = Console()


# =============================================================================
# LOGGER CLASS
# =============================================================================

class Logger:
    """
    Centralized logger with Rich console output.

    Features:
    - Color-coded console output
    - File logging with rotation
    - Source-based icon prefixes parsed from a leading [TAG]
    """

    _silent_mode = os.getenv("LPCYCLE_SILENT", "").lower() in ("1", "true", "yes")
    _file_enabled = os.getenv("LPCYCLE_FILE_LOG", "1").lower() not in ("0", "false", "no")

    @staticmethod
    def _timestamp() -> str:
        """High-precision timestamp (HH:MM:SS.ms)."""
        now = datetime.now()
        return f"{now.strftime('%H:%M:%S')}.{now.microsecond // 1000:03d}"

    @staticmethod
    def _parse_source(message: str) -> tuple:
        """Extract [SOURCE] tag from message if present."""
        stripped = message.strip()
        if stripped.startswith("[") and "]" in stripped:
            tag_end = stripped.index("]")
            source = stripped[1:tag_end].upper()
            if 0 < len(source) < 15:
                return source, stripped[tag_end + 1:].strip()
        return "SYSTEM", message

    @staticmethod
    def _format_console(level: str, message: str, source: str) -> None:
        if Logger._silent_mode:
            return

        icon = SOURCE_ICONS.get(source.upper(), "")
        msg_with_icon = f"{icon} {message}" if icon else message

        line = Text()
        line.append(f"{Logger._timestamp()} ", style="dim")
        line.append(f"| {level[:8].ljust(8)} ", style=LEVEL_STYLES.get(level, "white"))
        line.append(f"| {source[:10].ljust(10)} | ", style="dim")
        line.append(msg_with_icon)
        _console.print(line)

    @staticmethod
    def _log_to_file(level: int, message: str, source: str = "") -> None:
        if not Logger._file_enabled:
            return
        _attach_file_handler()
        full_msg = f"[{source}] {message}" if source else message
        file_logger.log(level, full_msg)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @staticmethod
    def info(message: str, icon: str = "") -> None:
        source, msg = Logger._parse_source(message)
        if icon:
            msg = f"{icon} {msg}"
        Logger._format_console("INFO", msg, source)
        Logger._log_to_file(logging.INFO, msg, source)

    @staticmethod
    def success(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("SUCCESS", msg, source)
        Logger._log_to_file(logging.INFO, f"✅ {msg}", source)

    @staticmethod
    def warning(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("WARNING", msg, source)
        Logger._log_to_file(logging.WARNING, msg, source)

    @staticmethod
    def error(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("ERROR", msg, source)
        Logger._log_to_file(logging.ERROR, msg, source)

    @staticmethod
    def debug(message: str) -> None:
        # File only
        source, msg = Logger._parse_source(message)
        Logger._log_to_file(logging.DEBUG, msg, source)

    @staticmethod
    def critical(message: str) -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console("CRITICAL", f"🛑 {msg}", source)
        Logger._log_to_file(logging.CRITICAL, f"🛑 {msg}", source)

    @staticmethod
    def section(title: str) -> None:
        """Print a section header."""
        if not Logger._silent_mode:
            _console.print()
            _console.rule(f"[bold magenta]{title}[/]", style="dim")
        Logger._log_to_file(logging.INFO, f"=== {title} ===", "SYSTEM")

    @staticmethod
    def set_silent(silent: bool) -> None:
        """Enable/disable console output."""
        Logger._silent_mode = silent

    @staticmethod
    def set_file_logging(enabled: bool) -> None:
        Logger._file_enabled = enabled
