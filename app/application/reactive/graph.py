from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Sequence
from typing import Any

from app.application.reactive.state import IDLE, Failed, Loading, QueryState, Ready
from app.domain.exceptions import DomainError


logger = logging.getLogger(__name__)

_UNSET = object()


class _Node:
    def __init__(self, name: str, deps: Sequence[str]):
        self.name = name
        self.deps = tuple(deps)

    def evaluate(self, inputs: tuple, graph: DataflowGraph) -> Any:
        raise NotImplementedError


class DerivedNode(_Node):
    def __init__(self, name: str, deps: Sequence[str], fn: Callable[..., Any]):
        super().__init__(name, deps)
        self._fn = fn
        self._inputs: Any = _UNSET
        self._value: Any = None

    def evaluate(self, inputs: tuple, graph: DataflowGraph) -> Any:
        if inputs == self._inputs:
            return self._value
        self._inputs = inputs
        self._value = self._fn(*inputs)
        logger.debug("dataflow_graph: recomputed node=%s", self.name)
        return self._value


class QueryNode(_Node):
    """Async source keyed by its upstream values.

    ``key`` returns None while the query must stay disabled. Every dispatch
    captures the key; a result is applied only if that key is still current.
    """

    def __init__(
        self,
        name: str,
        deps: Sequence[str],
        fetch: Callable[[Any], Awaitable[Any]],
        key: Callable[..., Hashable | None],
    ):
        super().__init__(name, deps)
        self._fetch = fetch
        self._key_fn = key
        self._key: Hashable | None = None
        self._last_good: Any = None
        self._last_good_key: Hashable | None = None
        self.state: QueryState = IDLE

    @property
    def key(self) -> Hashable | None:
        return self._key

    def evaluate(self, inputs: tuple, graph: DataflowGraph) -> QueryState:
        key = self._key_fn(*inputs)
        if key is None:
            self._key = None
            self.state = IDLE
        elif key != self._key:
            self._key = key
            self._dispatch(key, graph)
        return self.state

    def refetch(self, graph: DataflowGraph) -> None:
        if self._key is None:
            return
        self._dispatch(self._key, graph)

    def _dispatch(self, key: Hashable, graph: DataflowGraph) -> None:
        previous = self._last_good if self._last_good_key == key else None
        self.state = Loading(previous=previous)
        logger.debug("dataflow_graph: dispatch query=%s key=%s", self.name, key)
        graph._spawn(self._run(key, graph))

    async def _run(self, key: Hashable, graph: DataflowGraph) -> None:
        try:
            value = await self._fetch(key)
        except DomainError as exc:
            if key != self._key:
                logger.info(
                    "dataflow_graph: discarded_stale_error query=%s key=%s current_key=%s",
                    self.name,
                    key,
                    self._key,
                )
                return
            logger.warning(
                "dataflow_graph: query_failed query=%s key=%s error=%s",
                self.name,
                key,
                exc,
            )
            last_good = self._last_good if self._last_good_key == key else None
            self.state = Failed(error=exc, last_good=last_good)
        else:
            if key != self._key:
                logger.info(
                    "dataflow_graph: discarded_stale_result query=%s key=%s current_key=%s",
                    self.name,
                    key,
                    self._key,
                )
                return
            self._last_good = value
            self._last_good_key = key
            self.state = Ready(value)
        graph.propagate()


class DataflowGraph:
    """Named inputs plus derived and query nodes, evaluated in registration order.

    A node may only depend on names registered before it, so registration
    order is a topological order. Nodes re-run only when their inputs compare
    unequal to the previous evaluation. Query dispatch needs a running event
    loop.
    """

    def __init__(self) -> None:
        self._inputs: set[str] = set()
        self._values: dict[str, Any] = {}
        self._nodes: dict[str, _Node] = {}
        self._pending: set[asyncio.Task] = set()

    def add_input(self, name: str, value: Any = None) -> None:
        self._check_new(name)
        self._inputs.add(name)
        self._values[name] = value

    def add_derived(self, name: str, fn: Callable[..., Any], *, deps: Sequence[str]) -> None:
        self._register(DerivedNode(name, deps, fn))

    def add_query(
        self,
        name: str,
        fetch: Callable[[Any], Awaitable[Any]],
        *,
        key: Callable[..., Hashable | None],
        deps: Sequence[str],
    ) -> None:
        self._register(QueryNode(name, deps, fetch, key))

    def get(self, name: str) -> Any:
        return self._values[name]

    def set_input(self, name: str, value: Any) -> None:
        if name not in self._inputs:
            raise KeyError(f"Unknown input: {name}")
        if self._values[name] == value:
            return
        self._values[name] = value
        self.propagate()

    def refetch(self, name: str) -> None:
        node = self._nodes.get(name)
        if not isinstance(node, QueryNode):
            raise KeyError(f"Unknown query: {name}")
        node.refetch(self)
        self.propagate()

    def propagate(self) -> None:
        for node in self._nodes.values():
            inputs = tuple(self._values[dep] for dep in node.deps)
            self._values[node.name] = node.evaluate(inputs, self)

    async def settle(self) -> None:
        """Wait until no query is in flight, including ones spawned meanwhile."""
        while self._pending:
            await asyncio.gather(*tuple(self._pending))

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _register(self, node: _Node) -> None:
        self._check_new(node.name)
        missing = [dep for dep in node.deps if dep not in self._values]
        if missing:
            raise ValueError(f"Node {node.name} depends on unknown names: {missing}")
        self._nodes[node.name] = node
        self._values[node.name] = IDLE if isinstance(node, QueryNode) else None

    def _check_new(self, name: str) -> None:
        if name in self._values:
            raise ValueError(f"Duplicate node name: {name}")
