"""
Dependency graph construction and cycle detection.

The graph maps each task id to the ids it depends on. Cycles are found
with an iterative depth-first search so that long dependency chains never
hit the interpreter's recursion limit.
"""

import logging
from typing import Iterable

from models.task import Task
from services.task_store import TaskStore
from config import config

logger = logging.getLogger(__name__)

DependencyGraph = dict[str, list[str]]
Cycle = list[str]

# Visitation states
_ON_PATH = 1
_DONE = 2

_SIGNATURE_SEPARATOR = ">"


def build_dependency_graph(tasks: Iterable[Task], depends_key: str = None) -> DependencyGraph:
    """
    Build the adjacency map `task id -> [dependency ids]`.

    Args:
        tasks: Task snapshot
        depends_key: Attribute holding dependency references

    Returns:
        Graph in task iteration order. References to ids that are not in
        the snapshot are kept; the cycle detector skips them.
    """
    key = depends_key or config.DEPENDS_ON_KEY
    return {task.id: task.dependency_ids(key) for task in tasks}


def build_dependency_graph_from_store(
    store: TaskStore,
    workspace: str,
    depends_key: str = None,
) -> DependencyGraph:
    """
    Build the graph by fetching every task from the store.

    A task that fails to load contributes no dependency data; the rest of
    the pass continues. Failing to list the ids propagates to the caller.
    """
    key = depends_key or config.DEPENDS_ON_KEY
    graph: DependencyGraph = {}

    for task_id in store.list_task_ids(workspace):
        try:
            task = store.get_task(workspace, task_id)
        except Exception as e:
            logger.warning(f"Skipping dependencies of {task_id}: {e}")
            continue
        graph[task_id] = task.dependency_ids(key)

    return graph


def _walk(root: str, graph: DependencyGraph, state: dict[str, int],
          found: list[Cycle], signatures: set[str]):
    """Depth-first walk from `root`, recording every cycle reached."""
    path: list[str] = [root]
    position: dict[str, int] = {root: 0}
    stack = [(root, iter(graph.get(root, ())))]
    state[root] = _ON_PATH

    try:
        while stack:
            node, neighbors = stack[-1]
            advanced = False

            for nxt in neighbors:
                if nxt not in graph:
                    continue  # dangling reference
                mark = state.get(nxt)
                if mark is None:
                    state[nxt] = _ON_PATH
                    position[nxt] = len(path)
                    path.append(nxt)
                    stack.append((nxt, iter(graph[nxt])))
                    advanced = True
                    break
                if mark == _ON_PATH:
                    cycle = path[position[nxt]:]
                    signature = _SIGNATURE_SEPARATOR.join(cycle)
                    if signature not in signatures:
                        signatures.add(signature)
                        found.append(cycle)

            if not advanced:
                stack.pop()
                path.pop()
                del position[node]
                state[node] = _DONE
    finally:
        # Leave no node marked as on-path if the walk was interrupted
        for node in path:
            state[node] = _DONE


def detect_cycles(graph: DependencyGraph) -> list[Cycle]:
    """
    Find dependency cycles.

    Each cycle is the path from the first repeated task back to the task
    that closes the loop; the repeated task is not duplicated at the end.
    A task depending on itself is a one-element cycle. Cycles are returned
    in discovery order and de-duplicated by their exact id sequence, so
    the same loop entered at a different task counts as a different cycle.

    Never raises: a failure while walking from one task is logged and that
    walk contributes no further cycles.
    """
    state: dict[str, int] = {}
    found: list[Cycle] = []
    signatures: set[str] = set()

    for root in graph:
        if root in state:
            continue
        try:
            _walk(root, graph, state, found, signatures)
        except Exception as e:
            logger.warning(f"Cycle detection from {root} failed: {e}")

    if found:
        logger.info(f"Detected {len(found)} dependency cycle(s)")
    return found


def find_cycles(tasks: Iterable[Task], depends_key: str = None) -> list[Cycle]:
    """Build the graph for a task snapshot and detect its cycles."""
    return detect_cycles(build_dependency_graph(tasks, depends_key))


def format_cycle(cycle: Cycle) -> str:
    """Render a cycle as `a -> b -> a` for warnings."""
    return " -> ".join(cycle + cycle[:1])
