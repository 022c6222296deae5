"""Final connection summary and readiness diagnostics."""

from __future__ import annotations

import shlex

from ..utils.logging import log_error
from ..utils.system import python_command
from .poller import ServerEndpoint
from .session import TmuxSession

DIAGNOSTIC_LINES = 80


def _jupyter(*args: str) -> str:
    return shlex.join(python_command("jupyter", *args))


def show_summary(session: TmuxSession, endpoint: ServerEndpoint) -> None:
    """Print how to reach the server, plus its URL when polling found it."""
    port = endpoint.port
    print()
    print("=" * 56)
    print("Complete setup finished.")
    print()
    print(f"Jupyter:     running in tmux session '{session.name}' on port {port}")
    print()
    print("Attach to the session:")
    print(f"  {session.attach_command()}")
    print()
    print("Set a password (optional, one-time):")
    print(f"  {session.new_window_command('setpass', _jupyter('lab', 'password'))}")
    print()
    print("List running servers:")
    print(f"  {session.new_window_command('servers', _jupyter('server', 'list'))}")
    print()
    print("SSH port-forward from your laptop:")
    print(f"  ssh -N -L {port}:localhost:{port} user@your-server")
    print("=" * 56)

    if endpoint.ready:
        print("Server URL (raw):")
        print(f"  {endpoint.status_line}")
        if endpoint.browser_url:
            print()
            print("Open in browser after SSH port-forwarding:")
            print(f"  {endpoint.browser_url}")
    else:
        show_diagnostics(session, port)


def show_diagnostics(session: TmuxSession, port: int) -> None:
    log_error(f"Could not retrieve the Jupyter URL yet (port {port}).")

    print("\nDiagnostics:")
    print("1) tmux sessions:")
    print(TmuxSession.list_sessions().rstrip() or "  (no tmux sessions)")

    print(f"\n2) Last {DIAGNOSTIC_LINES} lines from the Jupyter tmux pane:")
    print(session.capture(DIAGNOSTIC_LINES).rstrip() or "  (pane output unavailable)")

    print("\n3) Manual checks you can run:")
    print(f"   {session.attach_command()}")
    print(f"   {_jupyter('server', 'list')}")
