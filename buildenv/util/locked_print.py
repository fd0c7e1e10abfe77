import sys
from threading import Lock
from typing import TextIO


PRINT_LOCK = Lock()


def locked_print(string: str, file: TextIO | None = None):
    """Print with a lock to prevent garbled output for multiple threads."""
    out = file if file is not None else sys.stdout
    with PRINT_LOCK:
        # print only prints so much, break up the string into lines
        for line in string.splitlines():
            print(line, file=out)
        out.flush()
