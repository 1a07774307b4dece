import asyncio
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Schedules callbacks on an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(delay, callback)


class Countdown:
    """Counts whole seconds down to zero, calling ``on_expire`` once at the end."""

    def __init__(
        self,
        scheduler: Scheduler,
        total_seconds: int,
        on_tick: Callable[[int], None],
        on_expire: Callable[[], None],
        interval: float = 1.0,
    ):
        self.scheduler = scheduler
        self.remaining = total_seconds
        self.interval = interval
        self.on_tick = on_tick
        self.on_expire = on_expire
        self._handle: Optional[TimerHandle] = None
        self.running = False

    def start(self):
        if self.running:
            return
        self.running = True
        self._schedule()

    def _schedule(self):
        self._handle = self.scheduler.call_later(self.interval, self._tick)

    def _tick(self):
        if not self.running:
            return
        self.remaining = max(self.remaining - 1, 0)
        self.on_tick(self.remaining)
        if self.remaining == 0:
            self.running = False
            self._handle = None
            self.on_expire()
        else:
            self._schedule()

    def cancel(self):
        self.running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
