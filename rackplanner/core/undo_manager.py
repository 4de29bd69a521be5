"""Undo/Redo manager: bounded command history.

Stores Command records (see rackplanner.core.commands) in two stacks.
The caller applies them: undo() hands back the command to invert,
redo() the command to re-apply. Pure Python class (no Qt dependency).
"""

from __future__ import annotations

from rackplanner.constants import MAX_HISTORY_DEPTH
from rackplanner.core.commands import Command


class UndoManager:
    """Linear undo/redo history of commands.

    Pushing a new command discards the redo stack (no branching history).
    When the undo stack exceeds *max_levels*, the oldest entry is dropped.

    Usage::

        mgr = UndoManager()
        mgr.push(command)          # After executing it
        cmd = mgr.undo()           # Caller applies cmd backwards
        cmd = mgr.redo()           # Caller applies cmd forwards
    """

    def __init__(self, max_levels: int = MAX_HISTORY_DEPTH) -> None:
        self._undo_stack: list[Command] = []
        self._redo_stack: list[Command] = []
        self._max_levels = max_levels

    @property
    def max_levels(self) -> int:
        return self._max_levels

    @property
    def can_undo(self) -> bool:
        return len(self._undo_stack) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._redo_stack) > 0

    @property
    def undo_count(self) -> int:
        return len(self._undo_stack)

    @property
    def redo_count(self) -> int:
        return len(self._redo_stack)

    @property
    def undo_description(self) -> str | None:
        """Label for the next undo ("Undo: <description>"), None if empty."""
        if not self._undo_stack:
            return None
        return f"Undo: {self._undo_stack[-1].description}"

    @property
    def redo_description(self) -> str | None:
        """Label for the next redo ("Redo: <description>"), None if empty."""
        if not self._redo_stack:
            return None
        return f"Redo: {self._redo_stack[-1].description}"

    def push(self, command: Command) -> None:
        """Record an executed command. Clears redo stack.

        Args:
            command: Command that has just been applied.
        """
        self._undo_stack.append(command)
        if len(self._undo_stack) > self._max_levels:
            self._undo_stack.pop(0)  # Drop oldest
        self._redo_stack.clear()

    def undo(self) -> Command | None:
        """Move the latest command to the redo stack.

        Returns:
            Command to invert, or None if nothing to undo.
        """
        if not self._undo_stack:
            return None
        command = self._undo_stack.pop()
        self._redo_stack.append(command)
        return command

    def redo(self) -> Command | None:
        """Move the latest undone command back to the undo stack.

        Returns:
            Command to re-apply, or None if nothing to redo.
        """
        if not self._redo_stack:
            return None
        command = self._redo_stack.pop()
        self._undo_stack.append(command)
        return command

    def clear(self) -> None:
        """Clear both stacks (e.g., after loading or importing a layout)."""
        self._undo_stack.clear()
        self._redo_stack.clear()
