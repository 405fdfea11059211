"""
Entry-point helper shared by the scripts in workers/.
"""

import asyncio
import signal
import sys
from typing import Callable, Optional, Set

from common.core.otel_axiom_exporter import _initialize_telemetry, get_logger
from common.workers.base_worker import BaseWorker


class WorkerLauncher:
    """Runs one worker in its own event loop until SIGINT/SIGTERM.

    A signal asks the worker to stop, which lets messages already being
    processed finish and be acknowledged before the process exits.
    """

    def __init__(self):
        self.logger = get_logger(__name__)
        self.worker_instance: Optional[BaseWorker] = None
        self._stop_tasks: Set[asyncio.Task] = set()

    def _request_stop(self, signum: int) -> None:
        self.logger.info(f"Received signal {signum}, stopping worker...")
        if self.worker_instance is None:
            return
        task = asyncio.create_task(self.worker_instance.stop())
        self._stop_tasks.add(task)
        task.add_done_callback(self._stop_tasks.discard)

    def _register_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._request_stop, signum)
            except NotImplementedError:
                self.logger.warning(f"Signal {signum} cannot be handled on this platform")

    async def _serve(
        self,
        worker_factory: Callable[..., BaseWorker],
        worker_name: str,
        args: tuple,
        kwargs: dict,
    ) -> bool:
        # Built inside the loop so providers bind to it
        self.worker_instance = worker_factory(*args, **kwargs)
        self._register_signal_handlers()

        self.logger.info(f"Starting {worker_name}...")
        try:
            await self.worker_instance.start()
        except Exception as e:
            self.logger.error(f"{worker_name} failed: {e}", exc_info=True)
            return False
        self.logger.info(f"{worker_name} shut down")
        return True

    def run(
        self,
        worker_factory: Callable[..., BaseWorker],
        worker_name: str,
        factory_args: tuple = (),
        factory_kwargs: Optional[dict] = None,
    ) -> None:
        """
        Run a worker until it is stopped; exits non-zero when it failed.

        Args:
            worker_factory: Function/class that creates the worker instance
            worker_name: Human readable name for logging
            factory_args: Args to pass to worker factory
            factory_kwargs: Kwargs to pass to worker factory
        """
        _initialize_telemetry()
        self.logger.info(f"Configuring {worker_name}...")

        try:
            succeeded = asyncio.run(
                self._serve(worker_factory, worker_name, factory_args, factory_kwargs or {})
            )
        except KeyboardInterrupt:
            self.logger.info("Interrupted before the worker was ready, exiting...")
            succeeded = True

        if not succeeded:
            sys.exit(1)
