"""Task status workflow.

Every status may move to every other status (the kanban board allows free
drag-and-drop). The workflow only decides which columns change alongside
the status and whether the move counts as a completion.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from src.clienthub.tasks.schemas import TaskStatus

BOARD_ORDER: tuple[TaskStatus, ...] = tuple(TaskStatus)

# Statuses shown as "pending" on the client detail view
OPEN_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.PENDENTE, TaskStatus.EM_ANDAMENTO})


def status_changes(new_status: TaskStatus, now: datetime) -> dict[str, Any]:
    """Column updates for a move to ``new_status``.

    ``concluida`` stamps completed_at; any other status clears it.
    """
    return {
        "status": new_status.value,
        "completed_at": now if new_status is TaskStatus.CONCLUIDA else None,
    }


def is_completion(previous: TaskStatus, new_status: TaskStatus) -> bool:
    """True when a task transitions into ``concluida`` from another status."""
    return new_status is TaskStatus.CONCLUIDA and previous is not TaskStatus.CONCLUIDA
