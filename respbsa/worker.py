"""Thread pool used to run frames concurrently."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable


class Worker:
    """Thread pool for per-frame work."""

    def __init__(self, max_workers: int = 1) -> None:
        """Initialize the executor.

        Parameters
        ----------
        max_workers
            Number of thread pool workers.
        """

        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(max_workers)), thread_name_prefix="respbsa-frame"
        )

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Run work in the thread pool.

        Parameters
        ----------
        fn
            Callable to execute.
        *args
            Positional arguments to pass to ``fn``.
        **kwargs
            Keyword arguments to pass to ``fn``.

        Returns
        -------
        concurrent.futures.Future
            Future for the submitted work.
        """
        return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    def __enter__(self) -> "Worker":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=exc_info[0] is None)
