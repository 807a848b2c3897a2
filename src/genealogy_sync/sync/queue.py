"""Breadth-first ancestor queue."""
from __future__ import annotations

from collections import deque
from typing import Literal

from ..models.sync import QueuedPerson
from ..storage.base import LocalStore

FULL = "full"


def resolve_generations(max_generations: int | Literal["full"], full_cap: int) -> int:
    """Turn a generation request into a bounded count; "full" means ``full_cap``."""
    if max_generations == FULL:
        return full_cap
    generations = int(max_generations)
    if generations < 0:
        raise ValueError(f"max_generations must be >= 0, got {generations}")
    return min(generations, full_cap)


def build_queue(store: LocalStore, root_id: str, max_generations: int) -> list[QueuedPerson]:
    """Ancestors of ``root_id`` in breadth-first order, root first at generation 0.

    Each person appears once even when reachable through several lines
    (pedigree collapse). Nobody beyond ``max_generations`` is queued, and
    parents missing from the store are left out.
    """
    if store.get_person(root_id) is None:
        return []

    queue = [QueuedPerson(person_id=root_id, generation=0)]
    visited = {root_id}
    frontier: deque[QueuedPerson] = deque(queue)

    while frontier:
        current = frontier.popleft()
        if current.generation >= max_generations:
            continue
        for edge in store.get_parent_edges(current.person_id):
            if edge.parent_id in visited:
                continue
            visited.add(edge.parent_id)
            if store.get_person(edge.parent_id) is None:
                continue
            item = QueuedPerson(person_id=edge.parent_id, generation=current.generation + 1)
            queue.append(item)
            frontier.append(item)
    return queue
