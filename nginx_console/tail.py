"""Reads the last N non-blank lines of a file by scanning backwards in chunks."""

import os

from nginx_console.errors import LogIOError

CHUNK_SIZE = 64 * 1024


def read_last_lines(path: str, lines: int, chunk_size: int = CHUNK_SIZE) -> list[str]:
    """Return up to *lines* non-blank lines from the end of *path*, oldest first.

    A missing file yields an empty list; other read failures raise LogIOError.
    """
    if lines <= 0 or not os.path.exists(path):
        return []

    try:
        with open(path, "rb") as f:
            f.seek(0, os.SEEK_END)
            pos = f.tell()
            tail = b""
            found: list[bytes] = []
            while pos > 0 and len(found) < lines:
                step = min(chunk_size, pos)
                pos -= step
                f.seek(pos)
                data = f.read(step) + tail
                parts = data.split(b"\n")
                # the first piece may continue in the previous chunk
                tail = parts[0] if pos > 0 else b""
                pieces = parts[1:] if pos > 0 else parts
                for piece in reversed(pieces):
                    if piece.strip():
                        found.append(piece)
                        if len(found) >= lines:
                            break
    except OSError as e:
        raise LogIOError(path, str(e)) from e

    return [p.decode("utf-8", errors="replace").rstrip("\r") for p in reversed(found)]
