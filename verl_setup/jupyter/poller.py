"""Readiness polling for the notebook server.

After the server is started inside its tmux session, ``jupyter server list``
is queried until a line for the configured port shows up.  That line carries
the server URL and, when token authentication is active, the access token.
"""

from __future__ import annotations

import re
import subprocess
import time
from dataclasses import dataclass, replace
from typing import Callable, Generic, Optional, TypeVar

from ..config import DEFAULT_POLL_ATTEMPTS, DEFAULT_POLL_INTERVAL, validate_port
from ..utils.logging import log_info, log_warn
from ..utils.system import python_command

T = TypeVar("T")

_TOKEN_RE = re.compile(r".*token=(\S*)")


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryResult(Generic[T]):
    value: Optional[T]
    attempts: int
    elapsed: float

    @property
    def succeeded(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry: up to ``max_attempts`` calls, ``interval`` seconds apart.

    ``sleep`` and ``clock`` are injectable so callers (and tests) control time.
    """
    max_attempts: int = DEFAULT_POLL_ATTEMPTS
    interval: float = DEFAULT_POLL_INTERVAL
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")

    @property
    def timeout(self) -> float:
        """Upper bound on time spent sleeping between attempts."""
        return self.max_attempts * self.interval

    def run(self, attempt: Callable[[], Optional[T]]) -> RetryResult[T]:
        """Call ``attempt`` until it returns something other than None."""
        start = self.clock()
        for number in range(1, self.max_attempts + 1):
            value = attempt()
            if value is not None:
                return RetryResult(value, number, self.clock() - start)
            if number < self.max_attempts:
                self.sleep(self.interval)
        return RetryResult(None, self.max_attempts, self.clock() - start)


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerEndpoint:
    """A launched notebook server, optionally resolved to its status line."""
    port: int
    session_name: str
    status_line: Optional[str] = None
    token: Optional[str] = None

    def __post_init__(self) -> None:
        validate_port(self.port)
        if self.token is not None and not self.status_line:
            raise ValueError("token requires a status line")

    @property
    def ready(self) -> bool:
        return bool(self.status_line)

    @property
    def browser_url(self) -> Optional[str]:
        if self.token is None:
            return None
        return f"http://localhost:{self.port}/?token={self.token}"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def find_status_line(output: str, port: int) -> Optional[str]:
    """Return the first line of ``output`` that mentions ``:<port>/``."""
    needle = f":{port}/"
    for line in output.splitlines():
        if needle in line:
            return line
    return None


def extract_token(line: str) -> Optional[str]:
    """Return the value of the last ``token=`` in ``line``, or None.

    The value runs up to the next whitespace; an empty value counts as absent.
    """
    match = _TOKEN_RE.match(line)
    if match is None or not match.group(1):
        return None
    return match.group(1)


def list_jupyter_servers() -> str:
    """Output of ``jupyter server list`` from this interpreter's environment.

    Whatever was printed is kept even on a nonzero exit; empty if jupyter is missing.
    """
    try:
        result = subprocess.run(
            python_command("jupyter", "server", "list"),
            capture_output=True, text=True, stdin=subprocess.DEVNULL,
        )
    except OSError:
        return ""
    return result.stdout or ""


# ---------------------------------------------------------------------------
# Poller
# ---------------------------------------------------------------------------

class ReadinessPoller:
    """Polls a status command until the server on ``endpoint.port`` appears."""

    def __init__(
        self,
        status_command: Callable[[], str] = list_jupyter_servers,
        policy: Optional[RetryPolicy] = None,
    ):
        self.status_command = status_command
        self.policy = policy or RetryPolicy()

    def _attempt(self, port: int) -> Optional[str]:
        return find_status_line(self.status_command() or "", port)

    def poll(self, endpoint: ServerEndpoint) -> ServerEndpoint:
        """Return ``endpoint`` populated with its status line and token.

        When the attempt bound is exhausted the endpoint comes back unchanged
        (``ready`` is False); this is not an error.
        """
        log_info(
            f"Waiting for the server on port {endpoint.port} "
            f"(up to {self.policy.max_attempts} checks, {self.policy.interval:g}s apart)..."
        )
        result = self.policy.run(lambda: self._attempt(endpoint.port))

        if not result.succeeded:
            log_warn(f"No server reported port {endpoint.port} after {result.attempts} checks")
            return endpoint

        log_info(f"Server answered after {result.attempts} check(s) ({result.elapsed:.0f}s)")
        line = result.value
        return replace(endpoint, status_line=line, token=extract_token(line))
