"""Read the task descriptor from stdin and drop the on-disk copy of it."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TextIO

from agent_runner.runner.contracts import TaskDescriptor, read_task_descriptor
from agent_runner.runner.errors import MalformedInput

logger = logging.getLogger(__name__)


def load_task_input(stream: TextIO, *, input_copy_path: Path | None) -> TaskDescriptor:
    """Read ``stream`` to EOF and parse it; raises ``MalformedInput``.

    The host entrypoint may leave a duplicate of the (secret-bearing) input on
    disk. It is purged right after a successful parse.
    """

    try:
        raw = stream.read()
    except (UnicodeDecodeError, OSError) as error:
        raise MalformedInput(f"could not read stdin: {error}") from error
    task = read_task_descriptor(raw)
    if input_copy_path is not None:
        purge_input_copy(input_copy_path)
    logger.info("Received input for group: %s", task.group_id)
    return task


def purge_input_copy(path: Path) -> bool:
    """Delete ``path`` if present. Returns whether a file was removed."""

    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as error:
        logger.warning("Could not remove input copy %s: %s", path, error)
        return False
    return True
