"""Single-writer owner of the project state."""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from .events import Event
from .models import ProjectState
from .state_machine import transition

logger = logging.getLogger(__name__)

Listener = Callable[[ProjectState, Event], None]


class ProjectStore:
    """Applies events to the project state one at a time.

    Any task may `dispatch` or `post` events; a single consumer task drains
    the queue and runs `transition` for each event in arrival order, so no
    two events are ever applied concurrently.

    Use as an async context manager, or call `start()` / `close()` yourself:

        async with ProjectStore() as store:
            await store.dispatch(SetAnalysis(analysis))
    """

    def __init__(self, state: Optional[ProjectState] = None) -> None:
        """Initialize the store.

        Args:
            state: Initial state. Defaults to a fresh `ProjectState`.
        """
        self._state = state or ProjectState()
        self._queue: "asyncio.Queue[Tuple[Event, Optional[asyncio.Future]]]" = asyncio.Queue()
        self._listeners: List[Listener] = []
        self._consumer: Optional[asyncio.Task] = None

    @property
    def state(self) -> ProjectState:
        """Return the latest applied state."""
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener(state, event)` after every applied event.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def start(self) -> None:
        """Start the consumer task on the running event loop."""
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.get_running_loop().create_task(self._consume())

    async def dispatch(self, event: Event) -> ProjectState:
        """Queue an event and wait until it has been applied.

        Returns:
            The state right after this event was applied.
        """
        self.start()
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((event, future))
        return await future

    def post(self, event: Event) -> None:
        """Queue an event without waiting for it."""
        self.start()
        self._queue.put_nowait((event, None))

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""
        if self._consumer is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Apply pending events and stop the consumer task."""
        await self.drain()
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

    async def __aenter__(self) -> "ProjectStore":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _consume(self) -> None:
        while True:
            event, future = await self._queue.get()
            try:
                self._apply(event)
                if future is not None and not future.done():
                    future.set_result(self._state)
            except Exception as e:
                logger.error(f"Failed to apply {type(event).__name__}: {e}")
                if future is not None and not future.done():
                    future.set_exception(e)
            finally:
                self._queue.task_done()

    def _apply(self, event: Event) -> None:
        self._state = transition(self._state, event)
        logger.debug(f"Applied {type(event).__name__} (stage={self._state.stage.value})")
        for listener in list(self._listeners):
            try:
                listener(self._state, event)
            except Exception as e:
                logger.warning(f"State listener failed on {type(event).__name__}: {e}")
