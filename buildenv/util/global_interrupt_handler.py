"""Global interrupt handler for coordinating KeyboardInterrupt across threads."""

import _thread
import os
import threading
from typing import Optional

from buildenv.util.locked_print import locked_print


class GlobalInterruptHandler:
    """Handles KeyboardInterrupt across worker threads."""

    _instance: Optional["GlobalInterruptHandler"] = None
    _lock = threading.Lock()

    def __init__(self) -> None:
        self.interrupted = threading.Event()
        self._interrupt_count = 0

    @classmethod
    def get_instance(cls) -> "GlobalInterruptHandler":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def is_interrupted(self) -> bool:
        return self.interrupted.is_set()

    def signal_interrupt(self, from_thread: Optional[str] = None) -> None:
        if not self.interrupted.is_set():
            self.interrupted.set()
            thread_info = f" from {from_thread}" if from_thread else ""
            locked_print(
                f"\nInterrupt signal received{thread_info}, stopping all workers..."
            )

        self._interrupt_count += 1
        if self._interrupt_count >= 2:
            locked_print("\nDouble Ctrl+C detected - forcing immediate exit")
            os._exit(130)

    def notify_main_thread(self) -> None:
        if not self.is_interrupted():
            self.signal_interrupt(from_thread=threading.current_thread().name)
        _thread.interrupt_main()


_handler = GlobalInterruptHandler.get_instance()


def notify_main_thread() -> None:
    _handler.notify_main_thread()
