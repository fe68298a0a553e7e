"""
Logger utility for the Fallible Resource library.

Prints acquisition, rollback and release decisions with verbosity levels.
Errors go to stderr, everything else to stdout; an optional log file
receives every line with a timestamp.
"""

import os
import sys
from typing import Optional
from datetime import datetime


LEVEL_PREFIXES = {
    "debug": "[DEBUG] ",
    "info": "",
    "warning": "[WARNING] ",
    "error": "[ERROR] ",
    "fatal": "[FATAL] ",
}


class ResourceLogger:
    """
    Logger for resource lifecycle decisions.

    Format: "ACQUIRED /srv/note.txt (mode=0o600, content=5B)"
    """

    def __init__(self, verbose: bool = False, log_file: Optional[str] = None, quiet: bool = False):
        """
        Args:
            verbose: Show debug lines (releases, sizes, manifest entries)
            log_file: Optional path; opened for writing, truncated
            quiet: Only errors reach the console (the file still gets everything)
        """
        self.verbose = verbose
        self.quiet = quiet
        self.log_file = log_file
        self.file_handle = None

        if self.log_file:
            self.file_handle = open(self.log_file, 'w', encoding='utf-8')
            started = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            self.file_handle.write(f"Resource Log - pid {os.getpid()} - {started}\n")
            self.file_handle.write("="*60 + "\n\n")

    def log(self, message: str, level: str = "info") -> None:
        """
        Log a message.

        Args:
            message: Message to log
            level: One of debug, info, warning, error, fatal
        """
        if level not in LEVEL_PREFIXES:
            raise ValueError(f"Unknown log level: {level}")
        if level == "debug" and not self.verbose:
            return

        line = LEVEL_PREFIXES[level] + message
        severe = level in ("error", "fatal")

        if severe:
            print(line, file=sys.stderr)
        elif not self.quiet:
            print(line)

        if self.file_handle:
            stamp = datetime.now().strftime("%H:%M:%S")
            self.file_handle.write(f"{stamp} {line}\n")
            self.file_handle.flush()

    def log_acquired(self, description: str) -> None:
        self.log(f"ACQUIRED {description}")

    def log_rejected(self, identity: str, kind: str, message: str) -> None:
        """Acquisition refused before anything was acquired."""
        self.log(f"REJECTED {identity} - {kind} ({message})", "warning")

    def log_rollback(self, identity: str, kind: str, message: str) -> None:
        """
        Log a rollback of a partially acquired resource.

        Args:
            identity: Resource identity
            kind: Error kind that triggered the rollback
            message: Failure description
        """
        self.log(f"ROLLBACK {identity} - {kind} ({message})", "warning")

    def log_released(self, identity: str) -> None:
        self.log(f"RELEASED {identity}", "debug")

    def log_summary(self, acquired: int, failed: int, rolled_back: int) -> None:
        """Log a provisioning summary."""
        self.log(f"\nResources acquired: {acquired}")
        self.log(f"Failures: {failed}")
        self.log(f"Rollbacks: {rolled_back}")

    def close(self) -> None:
        """Close log file if open."""
        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None

    def __del__(self):
        self.close()
