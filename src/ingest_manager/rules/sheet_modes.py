"""
Destination tab preparation for each handling mode
"""
from dataclasses import dataclass
import logging
from typing import Optional

from ingest_manager.exceptions import DestinationError
from ingest_manager.ports import Tab, Workbook
from ingest_manager.rules.schema import HandlingMode

logger = logging.getLogger(__name__)

DEFAULT_MODE = HandlingMode.CLEAR_AND_REUSE


@dataclass
class ModeResolution:
    mode: HandlingMode
    warning: Optional[str] = None


@dataclass
class PreparedTab:
    """A destination tab that is ready to receive rows"""
    tab: Tab
    created: bool
    existing_rows: int = 0


def resolve_mode(raw: Optional[str]) -> ModeResolution:
    """Map a stored handling mode string to a HandlingMode.

    Missing or unknown values fall back to clearAndReuse and carry a warning
    message for the session log.
    """
    if raw:
        for mode in HandlingMode:
            if mode.value == raw.strip():
                return ModeResolution(mode)
        warning = f"Unknown handling mode '{raw}', defaulting to {DEFAULT_MODE.value}"
    else:
        warning = f"No handling mode set, defaulting to {DEFAULT_MODE.value}"
    return ModeResolution(DEFAULT_MODE, warning)


class SheetModeResolver:
    """Prepares a destination tab according to the rule's handling mode"""

    def prepare(self, workbook: Workbook, tab_name: str, mode: HandlingMode) -> PreparedTab:
        if mode == HandlingMode.COPY_FORMAT:
            raise ValueError("copyFormat destinations are prepared by the sheet import strategy")

        tab = workbook.tab(tab_name)
        if tab is None:
            logger.debug(f"Creating destination tab '{tab_name}'")
            return PreparedTab(tab=self._create(workbook, tab_name), created=True)

        if mode == HandlingMode.APPEND:
            # Left untouched, the writer appends after the last row
            return PreparedTab(tab=tab, created=False, existing_rows=tab.last_row())

        if mode == HandlingMode.RECREATE:
            # The new tab gets a new id, references to the old one become stale
            logger.debug(f"Recreating destination tab '{tab_name}'")
            tab.delete()
            return PreparedTab(tab=self._create(workbook, tab_name), created=True)

        logger.debug(f"Clearing destination tab '{tab_name}'")
        tab.clear()
        return PreparedTab(tab=tab, created=False)

    def _create(self, workbook: Workbook, tab_name: str) -> Tab:
        tab = workbook.create_tab(tab_name)
        if tab is None:
            raise DestinationError(f"Could not create destination tab '{tab_name}'")
        return tab
