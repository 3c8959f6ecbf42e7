"""Daemon driver for recurring pollables.

Implements a long-running asyncio loop that invokes every registered
PollablePort on its own fixed tick grid. A poll is never run while the
previous one for the same pollable is still in flight: ticks that fall
inside a running poll are skipped, not queued.
"""

import asyncio
import logging
import signal
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from cuckoo.core.models import LiveContext, PollCycleResult
from cuckoo.core.ports import PollablePort

logger = logging.getLogger(__name__)

ContextProvider = Callable[[], Sequence[LiveContext]]


@dataclass
class _Registration:
    pollable: PollablePort
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    cycles: int = 0
    skipped_ticks: int = 0
    failures: int = 0


class PollableRegistry:
    """Asyncio-based registry that drives poll cycles for recurring tasks."""

    def __init__(
        self,
        contexts: ContextProvider | None = None,
        handle_signals: bool = True,
    ):
        """Initialize the registry.

        Args:
            contexts: Returns the live connection contexts handed to each
                poll. Called once per cycle.
            handle_signals: Install SIGTERM/SIGINT handlers in start().
        """
        self.contexts: ContextProvider = contexts or (lambda: ())
        self.handle_signals = handle_signals
        self.running = False
        self._registrations: list[_Registration] = []
        self._loops: list[asyncio.Task[None]] = []
        self._stopping = asyncio.Event()
        self._stopped = asyncio.Event()
        self._signals_installed = False

    @property
    def pollables(self) -> list[PollablePort]:
        return [r.pollable for r in self._registrations]

    def stats(self) -> dict[str, dict[str, int]]:
        """Per-pollable cycle, skipped-tick and failure counters."""
        return {
            r.pollable.name: {
                "cycles": r.cycles,
                "skipped_ticks": r.skipped_ticks,
                "failures": r.failures,
            }
            for r in self._registrations
        }

    def register(self, pollable: PollablePort) -> None:
        """Register a pollable and invoke its start hook.

        Raises:
            ValueError: If the pollable is already registered.
        """
        if any(r.pollable is pollable for r in self._registrations):
            raise ValueError(f"Pollable {pollable.name} is already registered")

        registration = _Registration(pollable=pollable)
        self._registrations.append(registration)
        pollable.start()
        logger.info(
            f"Registered pollable {pollable.name} "
            f"with {pollable.tick_seconds:.0f}s interval"
        )

        if self.running:
            self._spawn(registration)

    async def start(self) -> None:
        """Run poll loops until stop() is called or a signal arrives."""
        if self.running:
            logger.warning("Pollable registry already running")
            return

        self.running = True
        self._stopping.clear()
        self._stopped.clear()
        logger.info(
            f"Starting pollable registry with {len(self._registrations)} pollables"
        )

        if self.handle_signals:
            self._setup_signal_handlers()

        for registration in self._registrations:
            self._spawn(registration)

        try:
            await self._stopping.wait()
        except asyncio.CancelledError:
            logger.info("Pollable registry cancelled")
        finally:
            await self._shutdown()

    async def stop(self) -> None:
        """Suppress future ticks and wait for in-flight cycles to finish."""
        if not self.running:
            return

        logger.info("Stopping pollable registry...")
        self.running = False
        self._stopping.set()
        await self._stopped.wait()

    async def run_single_cycle(self) -> dict[str, PollCycleResult | None]:
        """Poll every registered pollable once (non-daemon mode).

        Returns:
            Result per pollable name; None where the poll failed or was
            already in flight.
        """
        results: dict[str, PollCycleResult | None] = {}
        for registration in self._registrations:
            results[registration.pollable.name] = await self._poll(registration)
        return results

    def _spawn(self, registration: _Registration) -> None:
        loop_task = asyncio.create_task(
            self._run_loop(registration),
            name=f"poll-{registration.pollable.name}",
        )
        self._loops.append(loop_task)

    async def _shutdown(self) -> None:
        self.running = False
        self._stopping.set()

        if self._loops:
            await asyncio.gather(*self._loops, return_exceptions=True)
            self._loops.clear()

        for registration in self._registrations:
            try:
                registration.pollable.stop()
            except Exception as e:
                logger.error(
                    f"Stop hook of {registration.pollable.name} failed: {e}",
                    exc_info=True,
                )

        self._remove_signal_handlers()
        self._stopped.set()
        logger.info("Pollable registry stopped")

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        try:
            loop = asyncio.get_running_loop()

            def _handle_signal(sig: int) -> None:
                logger.info(f"Received signal {sig}, initiating graceful shutdown...")
                self.running = False
                self._stopping.set()

            loop.add_signal_handler(signal.SIGTERM, _handle_signal, signal.SIGTERM)
            loop.add_signal_handler(signal.SIGINT, _handle_signal, signal.SIGINT)
            self._signals_installed = True
        except NotImplementedError:
            # Signal handlers not available on Windows
            logger.debug("Signal handlers not available on this platform")
        except Exception as e:
            logger.warning(f"Failed to set up signal handlers: {e}")

    def _remove_signal_handlers(self) -> None:
        if not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        loop.remove_signal_handler(signal.SIGTERM)
        loop.remove_signal_handler(signal.SIGINT)
        self._signals_installed = False

    async def _run_loop(self, registration: _Registration) -> None:
        """Tick loop for one pollable, on a fixed grid."""
        pollable = registration.pollable
        interval = pollable.tick_seconds
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + interval

        while self.running:
            delay = next_tick - loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass

            if not self.running:
                break

            await self._poll(registration)

            next_tick += interval
            now = loop.time()
            if next_tick <= now:
                missed = int((now - next_tick) // interval) + 1
                next_tick += missed * interval
                registration.skipped_ticks += missed
                logger.warning(
                    f"Poll of {pollable.name} overran its interval, "
                    f"skipped {missed} tick(s)"
                )

    async def _poll(self, registration: _Registration) -> PollCycleResult | None:
        """Run one poll unless one is already in flight for this pollable."""
        pollable = registration.pollable
        if registration.lock.locked():
            registration.skipped_ticks += 1
            logger.warning(f"Poll of {pollable.name} still running, skipping tick")
            return None

        async with registration.lock:
            registration.cycles += 1
            cycle_number = registration.cycles
            loop = asyncio.get_running_loop()
            start_time = loop.time()

            try:
                logger.debug(f"Starting poll cycle #{cycle_number} of {pollable.name}")
                result = await pollable.poll(list(self.contexts()))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                registration.failures += 1
                logger.error(
                    f"Error in poll cycle #{cycle_number} of {pollable.name}: {e}",
                    exc_info=True,
                )
                return None

            elapsed = loop.time() - start_time
            logger.info(
                f"Poll cycle #{cycle_number} of {pollable.name} completed in "
                f"{elapsed:.2f}s: {result.entities_checked} checked, "
                f"{result.lookups} lookups, "
                f"{result.notifications} notifications, "
                f"{result.evicted} expired, "
                f"{result.completed} finished, "
                f"{result.failures} failed"
            )
            return result
