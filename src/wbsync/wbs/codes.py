"""Hierarchical WBS code derivation.

A task's code is its parent's code plus ``.`` plus its 1-based rank among
siblings ordered by ``order_index``; top-level tasks get a bare rank. Codes
are derived, never stored. All codes of a project are computed in one pass
over an in-memory map of the full task set.

Example:
    >>> codes = compute_wbs_codes(tasks)
    >>> codes[child.id]
    '2.1'
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Hashable, Iterable
from typing import Protocol

from wbsync.errors import DataIntegrityError


class WbsNode(Protocol):
    """Anything with an id, an optional parent id and a sibling sort key."""

    @property
    def id(self) -> Hashable: ...

    @property
    def parent_id(self) -> Hashable | None: ...

    @property
    def order_index(self) -> int: ...


def group_siblings(tasks: Iterable[WbsNode]) -> dict[Hashable | None, list[WbsNode]]:
    """Group tasks by parent id, each group sorted by ``order_index``.

    The sort is stable, so ties keep their input order.

    Raises:
        DataIntegrityError: If a parent id does not resolve within the set.
    """
    by_id = {task.id: task for task in tasks}
    groups: dict[Hashable | None, list[WbsNode]] = defaultdict(list)

    for task in by_id.values():
        if task.parent_id is not None and task.parent_id not in by_id:
            raise DataIntegrityError(
                f"Task {task.id} references missing parent {task.parent_id}"
            )
        groups[task.parent_id].append(task)

    for siblings in groups.values():
        siblings.sort(key=lambda t: t.order_index)
    return groups


def compute_wbs_codes(tasks: Iterable[WbsNode]) -> dict[Hashable, str]:
    """Compute the WBS code of every task in a set.

    Args:
        tasks: The complete task set of one project.

    Returns:
        Mapping of task id to dotted code.

    Raises:
        DataIntegrityError: On an unresolvable parent or a parent cycle.
    """
    task_list = list(tasks)
    groups = group_siblings(task_list)

    codes: dict[Hashable, str] = {}
    stack: list[tuple[Hashable | None, str]] = [(None, "")]
    while stack:
        parent_id, prefix = stack.pop()
        for rank, task in enumerate(groups.get(parent_id, ()), start=1):
            code = f"{prefix}.{rank}" if prefix else str(rank)
            codes[task.id] = code
            stack.append((task.id, code))

    # Tasks unreachable from a root sit on a parent cycle
    unreached = [task.id for task in task_list if task.id not in codes]
    if unreached:
        raise DataIntegrityError(f"Task tree has a parent cycle through {unreached[0]}")

    return codes


def wbs_code_for(task_id: Hashable, tasks: Iterable[WbsNode]) -> str:
    """Code of a single task within its project's task set.

    Raises:
        DataIntegrityError: If the task is absent or the tree is broken.
    """
    codes = compute_wbs_codes(tasks)
    try:
        return codes[task_id]
    except KeyError:
        raise DataIntegrityError(f"Task {task_id} is not part of the task set") from None


def next_order_index(tasks: Iterable[WbsNode], parent_id: Hashable | None) -> int:
    """Order index for a new last child of ``parent_id`` (1 for an empty group)."""
    indexes = [task.order_index for task in tasks if task.parent_id == parent_id]
    return max(indexes, default=0) + 1
