"""Sequential, rate-limited execution of per-item generation work."""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, TypeVar

from .config import config
from .services.base import Generated

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")


async def call_blocking(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a collaborator call without blocking the event loop.

    Coroutine functions are awaited directly; plain functions (the HTTP and
    SDK clients) run in a worker thread.
    """
    if inspect.iscoroutinefunction(func):
        return await func(*args, **kwargs)
    result = await asyncio.to_thread(func, *args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result


@dataclass
class BatchItemResult(Generic[ItemT]):
    """Outcome of one item of a batch."""

    item: ItemT
    value: Any = None
    usage: int = 0
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchRunner:
    """Runs a generation function over items one at a time.

    A failing item never aborts the batch: its exception is captured in the
    item's result and the next item is processed. After every item the
    runner waits `delay` seconds so external services are not hit in bursts.
    """

    def __init__(
        self,
        delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the runner.

        Args:
            delay: Seconds to wait after each item. Defaults to config.batch_delay.
            sleep: Awaitable sleep function (injected by tests).
        """
        self._delay = config.batch_delay if delay is None else delay
        self._sleep = sleep

    @property
    def delay(self) -> float:
        return self._delay

    async def run_batch(
        self,
        items: Iterable[ItemT],
        generate: Callable[[ItemT], Any],
        on_result: Optional[Callable[[BatchItemResult[ItemT]], Awaitable[None]]] = None,
        label: str = "item",
    ) -> List[BatchItemResult[ItemT]]:
        """Generate every item in order.

        Args:
            items: Work items. An empty iterable is a no-op.
            generate: Called with one item; returns a `Generated` (or a bare
                value) and may be sync or async.
            on_result: Awaited with each item's result as soon as it is known.
            label: Name used in log messages.

        Returns:
            One result per item, in input order.
        """
        items = list(items)
        results: List[BatchItemResult[ItemT]] = []
        if not items:
            return results

        logger.info(f"Generating {len(items)} {label}(s)")
        for index, item in enumerate(items, 1):
            try:
                produced = await call_blocking(generate, item)
                if isinstance(produced, Generated):
                    result = BatchItemResult(item=item, value=produced.value, usage=produced.usage)
                else:
                    result = BatchItemResult(item=item, value=produced)
                logger.debug(f"{label} {index}/{len(items)} done")
            except Exception as e:
                logger.warning(f"{label} {index}/{len(items)} failed: {e}")
                result = BatchItemResult(item=item, error=e)

            results.append(result)
            if on_result is not None:
                await on_result(result)
            await self._sleep(self._delay)

        failed = sum(1 for result in results if not result.ok)
        logger.info(f"Finished {len(items)} {label}(s), {failed} failed")
        return results
