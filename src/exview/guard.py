from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import logging
from typing import Any, Final

from exview.document.base import CommandInfo, Disposable
from exview.errors import GuardViolation

logger = logging.getLogger(__name__)

# Commands that mutate workbook content, structure, or formatting.
BLOCKED_COMMANDS: Final[frozenset[str]] = frozenset(
    {
        # Cell content
        "sheet.command.set-range-values",
        "sheet.command.clear-selection-content",
        "sheet.command.clear-selection-format",
        "sheet.command.clear-selection-all",
        # Clipboard
        "sheet.command.cut",
        "sheet.command.paste",
        "sheet.command.paste-value",
        "sheet.command.paste-format",
        "sheet.command.paste-col-width",
        "sheet.command.paste-besides-border",
        "sheet.command.optional-paste",
        # Rows
        "sheet.command.insert-row",
        "sheet.command.insert-row-before",
        "sheet.command.insert-row-after",
        "sheet.command.insert-row-by-range",
        "sheet.command.insert-multi-rows-above",
        "sheet.command.insert-multi-rows-after",
        "sheet.command.remove-row",
        "sheet.command.remove-row-by-range",
        "sheet.command.append-row",
        "sheet.command.move-rows",
        "sheet.command.set-row-height",
        "sheet.command.set-row-data",
        "sheet.command.delta-row-height",
        # Columns
        "sheet.command.insert-col",
        "sheet.command.insert-col-before",
        "sheet.command.insert-col-after",
        "sheet.command.insert-col-by-range",
        "sheet.command.insert-multi-cols-before",
        "sheet.command.insert-multi-cols-right",
        "sheet.command.remove-col",
        "sheet.command.remove-col-by-range",
        "sheet.command.move-cols",
        "sheet.command.set-worksheet-col-width",
        "sheet.command.delta-column-width",
        # Ranges
        "sheet.command.delete-range-move-left",
        "sheet.command.delete-range-move-up",
        "sheet.command.delete-range-move-left-confirm",
        "sheet.command.delete-range-move-up-confirm",
        "sheet.command.insert-range-move-down",
        "sheet.command.insert-range-move-right",
        "sheet.command.insert-range-move-down-confirm",
        "sheet.command.insert-range-move-right-confirm",
        "sheet.command.move-range",
        "sheet.command.reorder-range",
        # Styles
        "sheet.command.set-style",
        "sheet.command.set-bold",
        "sheet.command.set-italic",
        "sheet.command.set-underline",
        "sheet.command.set-stroke",
        "sheet.command.set-font-family",
        "sheet.command.set-font-size",
        "sheet.command.set-text-color",
        "sheet.command.set-background-color",
        "sheet.command.set-vertical-text-align",
        "sheet.command.set-horizontal-text-align",
        "sheet.command.set-text-wrap",
        "sheet.command.set-text-rotation",
        "sheet.command.set-border",
        "sheet.command.set-border-position",
        "sheet.command.set-border-style",
        "sheet.command.set-border-color",
        "sheet.command.set-border-basic",
        # Sheets
        "sheet.command.insert-sheet",
        "sheet.command.remove-sheet",
        "sheet.command.remove-sheet-confirm",
        "sheet.command.set-worksheet-name",
        "sheet.command.set-worksheet-order",
        "sheet.command.set-worksheet-hidden",
        "sheet.command.copy-sheet",
        "sheet.command.set-tab-color",
        "sheet.command.set-workbook-name",
        # Merge
        "sheet.command.add-worksheet-merge",
        "sheet.command.add-worksheet-merge-all",
        "sheet.command.add-worksheet-merge-horizontal",
        "sheet.command.add-worksheet-merge-vertical",
        "sheet.command.remove-worksheet-merge",
        # Auto fill / format painter
        "sheet.command.auto-fill",
        "sheet.command.auto-clear-content",
        "sheet.command.refill",
        "sheet.command.apply-format-painter",
        # Data validation
        "sheet.command.addDataValidation",
        "sheet.command.remove-data-validation-rule",
        "sheet.command.remove-all-data-validation",
        "sheet.command.updateDataValidationRuleRange",
        "sheets.command.update-data-validation-setting",
        "sheets.command.update-data-validation-options",
        "sheets.command.clear-range-data-validation",
        "data-validation.command.addRuleAndOpen",
        "sheet.operation.show-data-validation-dropdown",
    }
)

# Menu entries a UI layer should hide in read-only mode.
READONLY_MENU_OVERRIDES: Final[dict[str, dict[str, bool]]] = {
    "sheet.command.cut": {"hidden": True},
    "sheet.command.paste": {"hidden": True},
    "sheet.menu.paste-special": {"hidden": True},
    "sheet.menu.cell-insert": {"hidden": True},
    "sheet.menu.row-insert": {"hidden": True},
    "sheet.menu.col-insert": {"hidden": True},
    "sheet.menu.delete": {"hidden": True},
    "sheet.menu.clear-selection": {"hidden": True},
    "sheet.command.clear-selection-content": {"hidden": True},
    "sheet.command.clear-selection-format": {"hidden": True},
    "sheet.command.clear-selection-all": {"hidden": True},
    "sheet.command.set-range-values": {"hidden": True},
    "sheet.menu.data-validation": {"hidden": True},
    "sheet.contextMenu.permission": {"hidden": True},
}


def is_mutating_command(command: CommandInfo) -> bool:
    """Return True when the command must be rejected in read-only mode.

    A command is mutating when its id is enumerated in ``BLOCKED_COMMANDS``
    or when the engine flags it with ``mutates_document = True``.
    """
    if command.id in BLOCKED_COMMANDS:
        return True
    return getattr(command, "mutates_document", None) is True


class ReadOnlyGuard:
    """Owns at most one command interceptor on a live document."""

    def __init__(self) -> None:
        self._handle: Disposable | None = None

    @property
    def is_active(self) -> bool:
        return self._handle is not None

    def apply(self, document: Any | None) -> None:
        """Install the interceptor; no-op when already guarded or no document."""
        if self._handle is not None or document is None:
            return
        self._handle = document.on_before_command_execute(self._intercept)
        logger.info("Read-only guard applied.")

    def remove(self) -> None:
        """Dispose the interceptor; no-op when not guarded."""
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        handle.dispose()
        logger.info("Read-only guard removed.")

    @contextmanager
    def applied(self, document: Any | None) -> Iterator[ReadOnlyGuard]:
        """Guard ``document`` for the duration of the block."""
        self.apply(document)
        try:
            yield self
        finally:
            self.remove()

    def disable_direct_manipulation(self, document: Any | None) -> None:
        """Neutralize drag/resize of drawings; failures are ignored.

        Command interception already rejects the resulting mutations, so this
        only removes the visual affordance.
        """
        try:
            get_transformer = getattr(document, "get_transformer", None)
            if get_transformer is None:
                return
            transformer = get_transformer()
            if transformer is None:
                return
            transformer.attach_to = lambda *args, **kwargs: transformer
        except Exception as exc:
            logger.debug("Could not disable drawing interaction: %s", exc)

    @staticmethod
    def _intercept(command: CommandInfo) -> None:
        if is_mutating_command(command):
            logger.debug("Blocked command %s in read-only mode.", command.id)
            raise GuardViolation(command.id)


__all__ = [
    "BLOCKED_COMMANDS",
    "READONLY_MENU_OVERRIDES",
    "ReadOnlyGuard",
    "is_mutating_command",
]
