"""Undo/redo manager for track edit commands."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional

from rro_editor.model.edit_commands import EditCommand
from rro_editor.model.invariants import InvariantError

if TYPE_CHECKING:
    from rro_editor.model.track_model import Track

logger = logging.getLogger(__name__)


class EditManager:
    """Execute reversible edit commands and manage undo/redo stacks.

    ``validator`` runs on every result; a command whose result violates an
    invariant is reverted and the :class:`InvariantError` re-raised, leaving
    both stacks untouched.
    """

    def __init__(self, validator: Optional[Callable[["Track"], None]] = None) -> None:
        self._undo_stack: list[EditCommand] = []
        self._redo_stack: list[EditCommand] = []
        self._validator = validator

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    def clear(self) -> None:
        self._undo_stack.clear()
        self._redo_stack.clear()

    def _validate(self, result) -> None:
        if self._validator is not None and result is not None:
            self._validator(result)

    def execute(self, command: EditCommand) -> "Track":
        """Execute a command, push it to undo history, and clear redo history."""
        result = command.apply()
        try:
            self._validate(result)
        except InvariantError:
            logger.warning("Rolling back %s: result violates track invariants", command.label)
            command.revert()
            raise
        self._undo_stack.append(command)
        self._redo_stack.clear()
        return result

    def undo(self) -> "Track | None":
        """Undo the latest command and return the restored track when available."""
        if not self._undo_stack:
            return None
        command = self._undo_stack.pop()
        result = command.revert()
        self._redo_stack.append(command)
        logger.debug("Undid %s", command.label)
        return result

    def redo(self) -> "Track | None":
        """Redo the latest undone command and return the reapplied track when available."""
        if not self._redo_stack:
            return None
        command = self._redo_stack.pop()
        result = command.apply()
        self._undo_stack.append(command)
        logger.debug("Redid %s", command.label)
        return result
