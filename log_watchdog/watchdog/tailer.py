# log_watchdog/watchdog/tailer.py

"""
Incremental tailing of append-only log files
"""
import os
import logging
from pathlib import Path
from typing import List, Tuple
from dataclasses import dataclass

from .errors import LogReadError

logger = logging.getLogger(__name__)

LINE_BOUNDARY = b"\n"


@dataclass
class TailState:
    """Read position for one log file"""
    offset: int = 0
    pending_fragment: bytes = b""

    def reset(self):
        self.offset = 0
        self.pending_fragment = b""


def split_lines(pending: bytes, data: bytes) -> Tuple[List[bytes], bytes]:
    """
    Split freshly read bytes into complete lines

    Args:
        pending: Unterminated fragment left over from the previous read
        data: Bytes read since then

    Returns:
        Tuple of (complete lines without their boundary, new pending fragment)
    """
    buffer = pending + data
    last_boundary = buffer.rfind(LINE_BOUNDARY)
    if last_boundary == -1:
        return [], buffer

    complete = buffer[:last_boundary]
    fragment = buffer[last_boundary + 1:]
    return complete.split(LINE_BOUNDARY), fragment


def decode_line(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


class Tailer:
    """
    Reads only the bytes appended to a log file since the last call
    """

    def __init__(self, path: Path, name: str = ""):
        """
        Initialize tailer

        Args:
            path: Log file to tail
            name: Owning watchdog name, used in log output
        """
        self.path = Path(path)
        self.name = name or self.path.name
        self.state = TailState()

    def seek_to_end(self):
        """Start tailing from the current end of file, skipping history"""
        try:
            self.state.offset = os.stat(self.path).st_size
        except FileNotFoundError:
            self.state.offset = 0
        except OSError as e:
            raise LogReadError(self.path, e) from e
        self.state.pending_fragment = b""
        logger.debug(f"[{self.name}] Tailing {self.path} from offset {self.state.offset}")

    def read_delta(self) -> List[str]:
        """
        Read newly completed lines since the last call

        State is only updated once the read has fully succeeded, so a
        failed read is retried from the same position next time.

        Returns:
            Complete lines in file order (possibly empty)

        Raises:
            LogReadError: If the log file is missing or unreadable
        """
        offset = self.state.offset
        pending = self.state.pending_fragment

        try:
            size = os.stat(self.path).st_size
            if size < offset:
                logger.info(
                    f"[{self.name}] {self.path} shrank from {offset} to {size} bytes, "
                    f"restarting from the beginning"
                )
                offset = 0
                pending = b""

            if size == offset:
                data = b""
            else:
                with open(self.path, "rb") as f:
                    f.seek(offset)
                    data = f.read()
        except OSError as e:
            raise LogReadError(self.path, e) from e

        lines, fragment = split_lines(pending, data)
        self.state.offset = offset + len(data)
        self.state.pending_fragment = fragment

        return [decode_line(line) for line in lines]
