"""
Run one host operation and capture its standard output as text.

Operations are started from a structured argument list; nothing is passed
through a shell. Exit status and stderr are not reported to the caller.
"""

from __future__ import annotations

import logging
import subprocess
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


def execute(argv: Sequence[str], *, timeout_s: Optional[float] = None) -> Optional[str]:
    """
    Run argv and return its stdout decoded as UTF-8.

    Returns None when the program could not be started, timed out, or wrote
    output that is not valid UTF-8. A program that ran and failed is not
    distinguished from one that ran and printed nothing.
    """
    args = list(argv)
    if not args:
        logger.error("Refusing to execute an empty argument list")
        return None

    try:
        proc = subprocess.run(
            args,
            capture_output=True,
            timeout=timeout_s,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.warning("Operation %s timed out after %ss", args[0], timeout_s)
        return None
    except OSError as exc:
        logger.warning("Operation %s could not be started: %s", args[0], exc)
        return None

    if proc.returncode != 0:
        logger.debug(
            "Operation %s exited rc=%s stderr=%r",
            args[0],
            proc.returncode,
            (proc.stderr or b"")[:500],
        )

    try:
        return proc.stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        logger.error("Operation %s produced non UTF-8 output: %s", args[0], exc)
        return None
