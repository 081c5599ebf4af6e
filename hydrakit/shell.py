"""The interactive command shell and the init process that keeps it alive.

Programs are started through a process host. ``spawn(path, argv)`` creates
a process running ``path`` and returns its pid, and ``is_running(pid)``
reports whether it is still alive. ``spawn`` raises ForkError when no
process can be created. It raises ExecError, carrying the pid of the child
that gave up, when the program could not be run.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Protocol, TextIO

__all__ = [
    "ShellExit",
    "ForkError",
    "ExecError",
    "ProcessHost",
    "Shell",
    "Sysinit",
    "split_line",
    "LINE_LIMIT",
    "SHELL_PATH",
]

LINE_LIMIT = 49
SHELL_PATH = "0:/bin/shell"

_TOKEN_DELIMITERS = re.compile(r"[ \t\r\n\a]+")


class ShellExit(Exception):
    """The process asked to terminate with ``status``."""

    def __init__(self, status: int) -> None:
        super().__init__(f"exit status {status}")
        self.status = status


class ForkError(OSError):
    """No new process could be created."""


class ExecError(OSError):
    """A child process was created but could not run its program."""

    def __init__(self, pid: int, message: str = "program could not be executed") -> None:
        super().__init__(message)
        self.pid = pid


class ProcessHost(Protocol):
    """What the shell needs from the kernel to run programs."""

    def spawn(self, path: str, argv: Sequence[str]) -> int: ...

    def is_running(self, pid: int) -> bool: ...


def split_line(line: str) -> list[str]:
    """Split a command line on spaces, tabs, carriage returns, newlines and bells."""
    return [token for token in _TOKEN_DELIMITERS.split(line) if token]


def _wait(host: ProcessHost, pid: int) -> None:
    while host.is_running(pid):
        pass


class Shell:
    """Reads command lines, runs built-ins and launches programs."""

    PROMPT = "> "
    BANNER = "Hydra Shell v1.0\n"

    def __init__(self, host: ProcessHost, stdin: TextIO, stdout: TextIO) -> None:
        self.host = host
        self.stdin = stdin
        self.stdout = stdout

    def read_line(self) -> str:
        """Read and echo one line of at most 49 characters, without its newline.

        NUL characters are ignored. Raises EOFError when the input ends
        before any character was read.
        """
        chars: list[str] = []
        consumed = False
        while len(chars) < LINE_LIMIT:
            char = self.stdin.read(1)
            if not char:
                if not consumed:
                    raise EOFError("end of input")
                break
            consumed = True
            if char == "\x00":
                continue
            self.stdout.write(char)
            if char == "\n":
                break
            chars.append(char)
        return "".join(chars)

    def _launch(self, args: Sequence[str]) -> int:
        self.stdout.write(f"executing {args[0]}\n")
        try:
            pid = self.host.spawn(args[0], list(args))
        except ForkError:
            self.stdout.write("failed to fork process\n")
            raise ShellExit(1) from None
        except ExecError as error:
            self.stdout.write("failed to execute process\n")
            pid = error.pid
        _wait(self.host, pid)
        return pid

    def execute(self, args: Sequence[str]) -> int:
        """Run a command; return 0 for built-ins and the pid for programs.

        ``exit`` raises ShellExit with status 0.
        """
        if not args:
            return 0
        if args[0] == "exit":
            raise ShellExit(0)
        if args[0] == "help":
            self.stdout.write(self.BANNER)
            return 0
        return self._launch(args)

    def step(self) -> int:
        """Prompt, read one line and execute it."""
        self.stdout.write(self.PROMPT)
        return self.execute(split_line(self.read_line()))

    def run(self) -> int:
        """Loop until ``exit`` or the end of input; return the exit status."""
        while True:
            try:
                self.step()
            except ShellExit as request:
                return request.status
            except EOFError:
                return 0


class Sysinit:
    """The first process: starts a shell and restarts it whenever it ends."""

    def __init__(self, host: ProcessHost, stdout: TextIO, shell_path: str = SHELL_PATH) -> None:
        self.host = host
        self.stdout = stdout
        self.shell_path = shell_path

    def start_shell(self) -> int:
        """Start a shell and return its pid; a failed fork raises ShellExit(1)."""
        try:
            return self.host.spawn(self.shell_path, [])
        except ForkError:
            self.stdout.write("SYSINIT -- ERROR UNRECOVERABLE -- FAILED TO FORK PROCESS\n")
            raise ShellExit(1) from None
        except ExecError as error:
            self.stdout.write("SYSINIT -- ERROR UNRECOVERABLE -- FAILED TO EXECUTE PROCESS\n")
            return error.pid

    def run(self, rounds: int | None = None) -> int:
        """Start shells one after another, ``rounds`` times or forever.

        Returns the number of shells that ran to completion.
        """
        completed = 0
        while rounds is None or completed < rounds:
            pid = self.start_shell()
            _wait(self.host, pid)
            self.stdout.write("SYSINIT -- INFO -- STARTING NEW SHELL\n")
            completed += 1
        return completed