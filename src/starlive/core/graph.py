"""
Dependency-ordered concurrent derivations.

Builds a graph over named producers, orders it topologically and runs every
ready batch concurrently. Results land in a shared store that later batches
read from, then in the turn.
"""

import asyncio
import inspect
import logging
from graphlib import CycleError, TopologicalSorter
from typing import Any, Dict, Iterable, Mapping, Union

from .errors import DependencyCycleError
from .memo import Derivation, Turn, call_producer

logger = logging.getLogger(__name__)


def _normalize(producers: Union[Iterable[Derivation], Mapping[str, Any]]) -> Dict[str, Derivation]:
    if isinstance(producers, Mapping):
        result = {}
        for key, value in producers.items():
            if isinstance(value, Derivation):
                result[key] = value
            elif isinstance(value, tuple):
                deps, fun = value
                result[key] = Derivation(key, deps, fun)
            else:
                result[key] = Derivation(key, None, value)
        return result
    return {d.key: d for d in producers}


def build_graph(derivations: Dict[str, Derivation]) -> TopologicalSorter:
    graph = TopologicalSorter()
    for key, d in derivations.items():
        named = [dep for dep in (d.deps or []) if isinstance(dep, str) and dep in derivations]
        graph.add(key, *named)
    return graph


async def _run(fun, store: Dict[str, Any]) -> Any:
    if inspect.iscoroutinefunction(fun):
        params = inspect.signature(fun).parameters
        return await (fun(store) if params else fun())
    result = await asyncio.to_thread(call_producer, fun, store)
    if inspect.isawaitable(result):
        result = await result
    return result


async def resolve_graph(turn: Turn, producers) -> Turn:
    """
    Run `producers` in dependency order and assign their results into `turn`.

    `producers` is an iterable of `Derivation`s or a mapping of key to a
    producer or a `(deps, producer)` tuple. A producer whose dependencies
    did not move keeps its stored value. A dependency on another producer
    counts as moved when that producer recomputed to a different value.

    Raises:
        DependencyCycleError: when the producers depend on each other in a loop.
    """
    derivations = _normalize(producers)
    graph = build_graph(derivations)
    try:
        graph.prepare()
    except CycleError as exc:
        cycle = exc.args[1] if len(exc.args) > 1 else []
        raise DependencyCycleError("Cyclic derivation graph: " + " -> ".join(map(str, cycle))) from exc

    store = dict(turn.assigns)
    while graph.is_active():
        ready = graph.get_ready()
        pending = [key for key in ready
                   if turn.should_compute(key, derivations[key].deps)]
        if pending:
            logger.debug("Resolving batch %s", pending)
            snapshot = dict(store)
            results = await asyncio.gather(*(_run(derivations[k].fun, snapshot) for k in pending))
            for key, value in zip(pending, results):
                turn.assign(key, value)
                store[key] = value
        graph.done(*ready)
    return turn
