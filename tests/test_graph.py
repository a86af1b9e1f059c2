"""Dependency-ordered concurrent derivations."""

import asyncio

import pytest

from starlive.core.errors import DependencyCycleError
from starlive.core.graph import resolve_graph
from starlive.core.memo import Derivation, SessionCache, Turn


@pytest.mark.asyncio
class TestResolveGraph:
    async def test_runs_in_dependency_order(self):
        order = []

        async def user(assigns):
            order.append("user")
            return {"id": assigns["user_id"]}

        async def posts(assigns):
            order.append("posts")
            return [f"post-{assigns['user']['id']}"]

        def stats(assigns):
            order.append("stats")
            return len(assigns["posts"])

        turn = Turn(state={"user_id": 7}, changed={"user_id"}, fields=["user_id"])
        await resolve_graph(turn, {
            "stats": (["posts"], stats),
            "posts": (["user"], posts),
            "user": (["user_id"], user),
        })
        assert order == ["user", "posts", "stats"]
        assert turn.derived == {"user": {"id": 7}, "posts": ["post-7"], "stats": 1}

    async def test_independent_branches_run_concurrently(self):
        started = asyncio.Event()
        seen = []

        async def left():
            seen.append("left")
            await asyncio.wait_for(started.wait(), timeout=1)
            return "L"

        async def right():
            seen.append("right")
            started.set()
            return "R"

        turn = Turn()
        await resolve_graph(turn, [Derivation("left", None, left), Derivation("right", None, right)])
        assert turn.derived == {"left": "L", "right": "R"}
        assert sorted(seen) == ["left", "right"]

    async def test_unchanged_dependencies_keep_values(self):
        calls = []

        def load(assigns):
            calls.append(assigns["q"])
            return assigns["q"].upper()

        cache, derived = SessionCache(), {}
        await resolve_graph(Turn(state={"q": "a"}, derived=derived, changed={"q"}, cache=cache, fields=["q"]),
                            {"result": (["q"], load)})
        await resolve_graph(Turn(state={"q": "a"}, derived=derived, changed=set(), cache=cache, fields=["q"]),
                            {"result": (["q"], load)})
        assert calls == ["a"]
        assert derived["result"] == "A"

    async def test_cycle_is_a_configuration_error(self):
        turn = Turn()
        with pytest.raises(DependencyCycleError, match="Cyclic derivation graph"):
            await resolve_graph(turn, {
                "a": (["b"], lambda: 1),
                "b": (["a"], lambda: 2),
            })
