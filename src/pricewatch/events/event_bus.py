"""Event bus for publishing alert lifecycle events."""

import asyncio
import inspect
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Set, Type

from ..config.logging import get_logger
from .events import DomainEvent

logger = get_logger(__name__)


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__name__", type(handler).__name__)


def _is_async_handler(handler: Callable) -> bool:
    # Callable objects with an async __call__ count as async handlers
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )


class EventBus:
    """Event bus for publishing and subscribing to domain events."""

    def __init__(self, name: str = "default", max_history_size: int = 1000):
        self.name = name
        self.logger = logger.bind(event_bus=name)

        # Event handlers registry: event_type -> list of handlers
        self._handlers: Dict[Type[DomainEvent], List[Callable]] = defaultdict(list)

        self._event_history: List[Dict[str, Any]] = []
        self._max_history_size = max_history_size

        # Fire-and-forget tasks are kept referenced until they finish
        self._background_tasks: Set[asyncio.Task] = set()

        self._stats = {
            "events_published": 0,
            "events_processed": 0,
            "handlers_executed": 0,
            "errors_count": 0,
            "last_event_time": None,
        }

    def subscribe(self, event_type: Type[DomainEvent], handler: Callable) -> None:
        """
        Subscribe a handler to an event type.

        Args:
            event_type: Type of event to subscribe to
            handler: Handler function (sync or async)
        """
        self._handlers[event_type].append(handler)

        self.logger.debug(
            "Event handler subscribed",
            event_type=event_type.__name__,
            handler=_handler_name(handler),
            total_handlers=len(self._handlers[event_type]),
        )

    def unsubscribe(self, event_type: Type[DomainEvent], handler: Callable) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns:
            True if handler was found and removed
        """
        if event_type in self._handlers and handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)
            return True

        return False

    async def publish(
        self, event: DomainEvent, wait_for_handlers: bool = True
    ) -> Dict[str, Any]:
        """
        Publish an event to all subscribed handlers.

        Handler failures are logged and counted, never raised to the publisher.

        Args:
            event: Domain event to publish
            wait_for_handlers: Whether to wait for all handlers to complete

        Returns:
            Dictionary with publication results
        """
        start_time = datetime.now(UTC)
        event_type = type(event)

        self._stats["events_published"] += 1
        self._stats["last_event_time"] = start_time
        self._add_to_history(event, "published")

        handlers = list(self._handlers.get(event_type, []))

        if not handlers:
            return {
                "event_id": event.event_id,
                "handlers_executed": 0,
                "successful_handlers": 0,
                "failed_handlers": 0,
                "execution_time_ms": 0,
            }

        results = await self._execute_handlers(event, handlers, wait_for_handlers)

        execution_time = (datetime.now(UTC) - start_time).total_seconds() * 1000

        self.logger.debug(
            "Event publishing completed",
            event_type=event_type.__name__,
            event_id=event.event_id,
            handlers_executed=results["handlers_executed"],
            failed_handlers=results["failed_handlers"],
            execution_time_ms=execution_time,
        )

        results["execution_time_ms"] = execution_time
        return results

    async def _execute_handlers(
        self, event: DomainEvent, handlers: List[Callable], wait_for_completion: bool
    ) -> Dict[str, Any]:
        """Run every handler for an event and tally the outcomes."""
        tasks = []
        successful_handlers = 0
        failed_handlers = 0

        for handler in handlers:
            if _is_async_handler(handler):
                task = asyncio.create_task(handler(event))
            else:
                task = asyncio.create_task(asyncio.to_thread(handler, event))
            tasks.append(task)

        if wait_for_completion:
            results = await asyncio.gather(*tasks, return_exceptions=True)

            for handler, result in zip(handlers, results):
                if isinstance(result, Exception):
                    failed_handlers += 1
                    self._stats["errors_count"] += 1

                    self.logger.error(
                        "Handler execution failed",
                        event_type=type(event).__name__,
                        handler=_handler_name(handler),
                        error=str(result),
                    )
                else:
                    successful_handlers += 1
        else:
            for task in tasks:
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)
            successful_handlers = len(tasks)

        self._stats["handlers_executed"] += len(handlers)
        self._stats["events_processed"] += 1

        return {
            "event_id": event.event_id,
            "handlers_executed": len(handlers),
            "successful_handlers": successful_handlers,
            "failed_handlers": failed_handlers,
        }

    def _add_to_history(self, event: DomainEvent, action: str):
        """Add event to history for debugging."""
        self._event_history.append(
            {
                "action": action,
                "event_type": type(event).__name__,
                "event_id": event.event_id,
                "timestamp": event.timestamp.isoformat(),
                "recorded_at": datetime.now(UTC).isoformat(),
            }
        )

        if len(self._event_history) > self._max_history_size:
            self._event_history = self._event_history[-self._max_history_size :]

    def get_statistics(self) -> Dict[str, Any]:
        """Get event bus statistics."""
        return {
            **self._stats,
            "registered_event_types": len(self._handlers),
            "total_handlers": sum(
                len(handlers) for handlers in self._handlers.values()
            ),
            "history_size": len(self._event_history),
        }

    def get_event_history(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get recent event history."""
        return self._event_history[-limit:] if self._event_history else []
