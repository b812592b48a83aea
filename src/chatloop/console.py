"""Interactive console loop."""
from __future__ import annotations

from typing import Callable

from .chat import ChatSession


QUIT_COMMANDS = frozenset({"quit", "exit"})
CLEAR_COMMAND = "clear"

BANNER = "=== multi-turn chat (type 'quit' to leave, 'clear' to reset history) ==="


def run_console(
    session: ChatSession,
    read_line: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
) -> None:
    write(BANNER)
    while True:
        try:
            user_input = read_line("\nUser> ")
        except EOFError:
            write("")
            break

        if user_input in QUIT_COMMANDS:
            write("Goodbye!")
            break
        if user_input == CLEAR_COMMAND:
            session.clear()
            write("History cleared.")
            continue

        result = session.respond(user_input)
        write(f"Assistant> {result.text}")
        write(f"[elapsed: {result.metrics.elapsed_s:.2f}s]")
