"""
Circuit breaker for external dependencies

One breaker guards one dependency. After a run of consecutive failures the
breaker opens and refuses calls outright; once the cooldown has elapsed a
single trial call is let through to decide whether to close again.
"""
import asyncio
import inspect
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar, Union

from .config import CircuitBreakerConfig
from .errors import CircuitBreakerOpenError
from .models import CircuitPhase, CircuitState
from .store import Repository, default_repository

logger = logging.getLogger(__name__)

T = TypeVar("T")

StateChangeCallback = Callable[[str, CircuitPhase, CircuitPhase], None]

MAX_ERROR_LENGTH = 200


class CircuitBreaker:
    """Guards calls to a single external dependency"""

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        store: Optional[Repository[CircuitState]] = None,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[StateChangeCallback] = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.store = default_repository(store)
        self.clock = clock
        self.on_state_change = on_state_change

        self._lock = asyncio.Lock()
        self._trial_in_flight = False
        self._total_failures = 0
        self._total_successes = 0

        if self.store.get(self.name) is None:
            self.store.put(self.name, CircuitState(name=self.name))

    @property
    def state(self) -> CircuitPhase:
        return self._load().phase

    async def call(self, fn: Callable[..., Union[Awaitable[T], T]], *args: Any, **kwargs: Any) -> T:
        """
        Invoke fn through the breaker.

        Raises:
            CircuitBreakerOpenError: the breaker is open, or a half-open trial call
                is already in flight; fn is not invoked
            TimeoutError: fn exceeded call_timeout_seconds (counted as a failure)
        """
        is_trial = await self._admit()

        try:
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await self._await_bounded(result)
        except asyncio.CancelledError:
            # Abandoned calls are neither successes nor failures
            if is_trial:
                self._trial_in_flight = False
            raise
        except Exception as e:
            await self._record_failure(e, is_trial)
            raise

        await self._record_success(is_trial)
        return result

    async def _admit(self) -> bool:
        """Decide whether a call may proceed; True when it is the half-open trial call"""
        async with self._lock:
            state = self._load()

            if state.phase == CircuitPhase.OPEN:
                if not self._cooldown_elapsed(state):
                    logger.debug(f"Circuit breaker {self.name} is OPEN, rejecting call")
                    raise CircuitBreakerOpenError(self.name, state.last_error)
                state = self._transition(state, CircuitPhase.HALF_OPEN)

            is_trial = False
            if state.phase == CircuitPhase.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitBreakerOpenError(self.name, state.last_error)
                self._trial_in_flight = True
                is_trial = True

            self._save(replace(state, total_requests=state.total_requests + 1))
            return is_trial

    async def _await_bounded(self, awaitable: Awaitable[T]) -> T:
        if (timeout := self.config.call_timeout_seconds) is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"Call through circuit breaker {self.name} timed out after {timeout}s") from e

    async def _record_failure(self, error: Exception, is_trial: bool) -> None:
        message = f"{type(error).__name__}: {error}"[:MAX_ERROR_LENGTH]

        async with self._lock:
            self._total_failures += 1
            state = self._load()
            state = replace(state, consecutive_failures=state.consecutive_failures + 1, last_error=message)

            if is_trial:
                self._trial_in_flight = False
                logger.warning(f"Circuit breaker {self.name} trial call failed: {message}")
                state = self._transition(state, CircuitPhase.OPEN)
            elif (state.phase == CircuitPhase.CLOSED
                  and state.consecutive_failures >= self.config.failure_threshold):
                logger.error(
                    f"Circuit breaker {self.name} tripped after "
                    f"{state.consecutive_failures} consecutive failures: {message}"
                )
                state = self._transition(state, CircuitPhase.OPEN)
            else:
                self._save(state)

    async def _record_success(self, is_trial: bool) -> None:
        async with self._lock:
            self._total_successes += 1
            state = self._load()

            if is_trial:
                self._trial_in_flight = False
                self._transition(replace(state, consecutive_failures=0, last_error=None), CircuitPhase.CLOSED)
            elif state.phase == CircuitPhase.CLOSED and state.consecutive_failures:
                self._save(replace(state, consecutive_failures=0))

    def _cooldown_elapsed(self, state: CircuitState) -> bool:
        if state.opened_at is None:
            return True
        return self.clock() - state.opened_at >= self.config.reset_timeout_seconds

    def _transition(self, state: CircuitState, phase: CircuitPhase) -> CircuitState:
        old_phase = state.phase
        opened_at = self.clock() if phase == CircuitPhase.OPEN else state.opened_at
        if phase == CircuitPhase.CLOSED:
            opened_at = None
        new_state = replace(state, phase=phase, opened_at=opened_at)
        self._save(new_state)

        if old_phase != phase:
            logger.info(f"Circuit breaker {self.name}: {old_phase.value} -> {phase.value}")
            if self.on_state_change:
                try:
                    self.on_state_change(self.name, old_phase, phase)
                except Exception as e:
                    logger.error(f"State change callback for {self.name} failed: {e}")
        return new_state

    def _load(self) -> CircuitState:
        return self.store.get(self.name) or CircuitState(name=self.name)

    def _save(self, state: CircuitState) -> None:
        self.store.put(self.name, state)

    def get_stats(self) -> Dict[str, Any]:
        state = self._load()
        return {
            "name": self.name,
            "state": state.phase.value,
            "consecutive_failures": state.consecutive_failures,
            "total_requests": state.total_requests,
            "total_failures": self._total_failures,
            "total_successes": self._total_successes,
            "opened_at": state.opened_at,
            "last_error": state.last_error,
            "trial_in_flight": self._trial_in_flight,
        }

    def force_open(self) -> None:
        """Open the breaker and restart its cooldown"""
        logger.warning(f"Circuit breaker {self.name} forced OPEN")
        self._transition(self._load(), CircuitPhase.OPEN)

    def force_close(self) -> None:
        logger.warning(f"Circuit breaker {self.name} forced CLOSED")
        self._trial_in_flight = False
        self._transition(replace(self._load(), consecutive_failures=0), CircuitPhase.CLOSED)

    def reset(self) -> None:
        """Return to a fresh CLOSED state with cleared statistics"""
        old_phase = self._load().phase
        self._trial_in_flight = False
        self._total_failures = 0
        self._total_successes = 0
        self._save(CircuitState(name=self.name))
        if old_phase != CircuitPhase.CLOSED:
            logger.info(f"Circuit breaker {self.name} reset")

    def __repr__(self) -> str:
        return f"CircuitBreaker(name='{self.name}', state={self.state.value})"


class CircuitBreakerRegistry:
    """One breaker per dependency name"""

    def __init__(
        self,
        store: Optional[Repository[CircuitState]] = None,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[StateChangeCallback] = None,
    ):
        self.store = default_repository(store)
        self.clock = clock
        self.on_state_change = on_state_change
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get_or_create(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        if (breaker := self._breakers.get(name)) is None:
            breaker = CircuitBreaker(name, config, self.store, self.clock, self.on_state_change)
            self._breakers[name] = breaker
        return breaker

    def get(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(name)

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
