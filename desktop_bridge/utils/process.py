"""Subprocess helpers for the external command-line interfaces.

Both bridges talk to their subsystem through a command-line client
(``pactl`` and ``swaymsg``). These helpers run one-shot queries and
actions, and stream the stdout of long-running subscriptions.
"""

import json
import logging
import subprocess
from typing import IO, Any, Iterator, List, Optional

from desktop_bridge.core.errors import ExternalCommandError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
CHUNK_SIZE = 4096


def run_text(args: List[str], timeout: Optional[float] = DEFAULT_TIMEOUT) -> str:
    """Run a command and return its stdout.

    Args:
        args: Command and arguments in list form (never run through a shell).
        timeout: Seconds before the command is killed.

    Returns:
        Decoded stdout of the command.

    Raises:
        ExternalCommandError: If the command is missing, times out, exits
            non-zero or writes output that is not valid UTF-8.
    """
    logger.debug(f"Running: {' '.join(args)}")
    try:
        result = subprocess.run(args, capture_output=True, timeout=timeout)
    except FileNotFoundError as e:
        raise ExternalCommandError(f"Executable not found: {args[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise ExternalCommandError(f"Command timed out after {timeout}s: {args}") from e

    try:
        stdout = result.stdout.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ExternalCommandError(f"Command wrote invalid UTF-8: {args}") from e

    if result.returncode != 0:
        # pactl reports failures on stderr, swaymsg on stdout
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        message = stderr or stdout.strip() or f"exit code {result.returncode}"
        raise ExternalCommandError(f"{args[0]} failed: {message}")

    return stdout


def run_json(args: List[str], timeout: Optional[float] = DEFAULT_TIMEOUT) -> Any:
    """Run a command and parse its stdout as JSON.

    Raises:
        ExternalCommandError: If the command fails or its output is not JSON.
    """
    stdout = run_text(args, timeout=timeout)
    try:
        return json.loads(stdout)
    except json.JSONDecodeError as e:
        raise ExternalCommandError(f"Could not parse JSON from {args[0]}: {e}") from e


def iter_chunks(stream: IO[bytes], size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield whatever bytes are available from a binary stream until EOF.

    Uses ``read1`` when the stream provides it so that a chunk is returned
    as soon as the producer flushes, instead of waiting for ``size`` bytes.
    """
    read = getattr(stream, "read1", None) or stream.read
    while True:
        chunk = read(size)
        if not chunk:
            return
        yield chunk


class ProcessStream:
    """Raw stdout chunks of a running subscription process.

    Closing the stream terminates the process, whether or not any chunk was
    read. When the process exits on its own the stream is over and a
    TransportError is raised, since no further events will ever arrive.
    """

    def __init__(self, args: List[str], process: subprocess.Popen):
        self.args = args
        self.process = process
        self._chunks = iter_chunks(process.stdout)

    def __iter__(self) -> Iterator[bytes]:
        return self

    def __next__(self) -> bytes:
        try:
            return next(self._chunks)
        except StopIteration:
            self.close()
            raise TransportError(
                f"Event stream {self.args[0]} exited with code {self.process.returncode}"
            ) from None

    def close(self) -> None:
        if self.process.poll() is None:
            self.process.terminate()
            try:
                self.process.wait(timeout=2)
            except subprocess.TimeoutExpired:
                self.process.kill()


def stream_process(args: List[str]) -> ProcessStream:
    """Spawn a long-running process and return a stream of its stdout.

    The process is started before this returns, so a missing executable is
    reported here rather than on the first read.

    Raises:
        TransportError: If the process cannot be started.
    """
    logger.info(f"Starting event stream: {' '.join(args)}")
    try:
        process = subprocess.Popen(
            args, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL
        )
    except (FileNotFoundError, OSError) as e:
        raise TransportError(f"Could not start {args[0]}: {e}") from e
    return ProcessStream(args, process)
