"""
Rate gateway for calls to the external place-data provider.

Paces outbound calls with a fixed per-minute window. The window restarts 60
seconds after the previous reset rather than sliding, so two bursts can land
close together across a reset boundary. Retrying after a provider refusal is
left to the caller.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from venuemap.models.errors import ProviderUnavailableError, RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

WINDOW_SECONDS = 60.0


class RateLimitState:
    """Per-minute call counter. Shared by every caller of one gateway."""

    def __init__(
        self,
        max_per_minute: int,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_per_minute < 1:
            raise ValueError("max_per_minute must be at least 1")
        self.max_per_minute = max_per_minute
        self.window_seconds = window_seconds
        self.clock = clock
        self.count = 0
        self.window_start = clock()
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def lock(self) -> asyncio.Lock:
        """Lock for the running event loop, created on first use in that loop."""
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def reset_if_elapsed(self, now: float) -> None:
        if now - self.window_start >= self.window_seconds:
            self.count = 0
            self.window_start = now

    def seconds_until_reset(self, now: float) -> float:
        return max(0.0, self.window_start + self.window_seconds - now)


class RateGateway:
    """Throttles provider calls and converts provider refusals into `RateLimitedError`."""

    def __init__(
        self,
        state: RateLimitState,
        cooldown_seconds: float = 5.0,
        timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.state = state
        self.cooldown_seconds = cooldown_seconds
        self.timeout = timeout
        self._sleep = sleep

    async def call(self, fn: Callable[[], Awaitable[T]], timeout: Optional[float] = None) -> T:
        """
        Run `fn` once a slot in the current window is free.

        Raises:
            RateLimitedError: the provider answered "too many requests"; raised
                after the cooldown has elapsed.
            ProviderUnavailableError: the call exceeded its timeout.
        """
        await self._acquire_slot()

        effective_timeout = timeout if timeout is not None else self.timeout
        try:
            if effective_timeout:
                return await asyncio.wait_for(fn(), effective_timeout)
            return await fn()
        except RateLimitedError as exc:
            logger.warning(
                f"Provider refused call (too many requests), cooling down {self.cooldown_seconds}s"
            )
            await self._sleep(self.cooldown_seconds)
            if exc.retry_after is None:
                exc.retry_after = self.cooldown_seconds
            raise
        except asyncio.TimeoutError as exc:
            logger.error(f"Provider call timed out after {effective_timeout}s")
            raise ProviderUnavailableError(
                f"Provider call timed out after {effective_timeout}s"
            ) from exc

    async def _acquire_slot(self) -> None:
        state = self.state
        async with state.lock:
            while True:
                now = state.clock()
                state.reset_if_elapsed(now)
                if state.count < state.max_per_minute:
                    state.count += 1
                    return

                wait = state.seconds_until_reset(now)
                logger.info(
                    f"Rate limit of {state.max_per_minute}/min reached, waiting {wait:.1f}s for window reset"
                )
                await self._sleep(wait)
