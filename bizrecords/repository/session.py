"""Interactive session state shared by repositories."""

from typing import Optional


class ActiveTaskSession:
    """Single slot holding the id of the task the user is working on.

    Owned by the composition root and passed to the task repository by
    reference. Writes are last-wins; there is no locking.
    """

    def __init__(self, active_task_id: Optional[int] = None):
        self.active_task_id = active_task_id

    def set(self, task_id: int) -> None:
        self.active_task_id = task_id

    def clear(self) -> None:
        self.active_task_id = None

    @property
    def is_set(self) -> bool:
        return self.active_task_id is not None
