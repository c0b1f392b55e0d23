"""External process runner with streamed output.

Wraps :class:`subprocess.Popen` so that stdout and stderr are read as they
arrive and forwarded chunk by chunk to a raw-output callback (used for
progress parsing) and a log sink.
"""
import codecs
import logging
import subprocess
import threading
from pathlib import Path
from typing import IO, Callable, List, Optional, Sequence, Union

from .errors import ErrorContext, ExitCodeError, SpawnError
from .utils.fs import args_to_string

logger = logging.getLogger(__name__)

Arg = Union[str, int, float, Path]
OutputCallback = Callable[[str], None]

READ_CHUNK_SIZE = 4096


def _reader(
    stream: IO[bytes],
    captured: List[str],
    lock: threading.Lock,
    sinks: Sequence[OutputCallback],
) -> None:
    """Pump one pipe until EOF, forwarding decoded chunks to every sink."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    read = getattr(stream, "read1", stream.read)

    while True:
        data = read(READ_CHUNK_SIZE)
        text = decoder.decode(data, final=not data)
        if text:
            with lock:
                captured.append(text)
                for sink in sinks:
                    try:
                        sink(text)
                    except Exception:
                        logger.exception("Output callback failed")
        if not data:
            break

    stream.close()


def execute(
    binary: Union[str, Path],
    args: Sequence[Arg],
    cwd: Optional[Union[str, Path]] = None,
    on_output: Optional[OutputCallback] = None,
    on_log: Optional[OutputCallback] = None,
) -> None:
    """Run an external binary to completion.

    Args:
        binary: Path to the executable
        args: Argument vector, items are converted with ``str()``
        cwd: Working directory for the process
        on_output: Receives every raw output chunk (stdout and stderr)
        on_log: Log sink, receives the execution banner, and every chunk
            unless on_output is given (which then owns the output)

    Raises:
        SpawnError: If the process could not be started
        ExitCodeError: If the process exited with a nonzero code
    """
    final_args = [str(arg) for arg in args]
    command = [str(binary), *final_args]

    banner = (
        "Executing binary:\n"
        "----------------------------------------\n"
        f'→ bin: "{binary}"\n'
        f"→ args: {args_to_string(final_args)}\n"
        f'→ cwd: "{cwd}"\n'
        "----------------------------------------"
    )
    logger.debug(banner)
    if on_log:
        on_log(banner)

    try:
        proc = subprocess.Popen(
            command,
            cwd=str(cwd) if cwd is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        raise SpawnError(
            str(binary),
            e.strerror or str(e),
            ErrorContext(stage="process", operation="spawn", command=command),
        ) from e

    sink = on_output or on_log
    sinks = [sink] if sink is not None else []
    lock = threading.Lock()
    stdout: List[str] = []
    stderr: List[str] = []

    readers = [
        threading.Thread(
            target=_reader,
            args=(proc.stdout, stdout, lock, sinks),
            daemon=True,
            name="process-stdout",
        ),
        threading.Thread(
            target=_reader,
            args=(proc.stderr, stderr, lock, sinks),
            daemon=True,
            name="process-stderr",
        ),
    ]
    for reader in readers:
        reader.start()

    exit_code = proc.wait()
    for reader in readers:
        reader.join()

    if exit_code != 0:
        output = "".join(stderr) or "".join(stdout)
        logger.debug(f"{Path(str(binary)).name} exited with code {exit_code}")
        raise ExitCodeError(
            exit_code,
            output,
            ErrorContext(
                stage="process",
                operation="execute",
                command=command,
                output=output,
                return_code=exit_code,
            ),
        )
