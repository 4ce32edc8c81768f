"""Google Sheets adapter implementing the workbook and tab operations used by the strategies.

Every API call goes through :func:`_execute`, which converts ``HttpError``
responses into typed ingest errors so that the engine can decide whether a
retry is worthwhile. Reads are reported as source failures and writes as
destination failures.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from googleapiclient.errors import HttpError

from ingest_manager.exceptions import DestinationError, translate_http_error
from ingest_manager.rules.resources import resolve_resource_id

logger = logging.getLogger(__name__)


def quote_title(title: str) -> str:
    """Return a worksheet title quoted according to A1 notation rules."""

    safe = (title or "").replace("'", "''")
    return f"'{safe}'"


def _execute(request, side: str) -> Dict[str, Any]:
    try:
        return request.execute()
    except HttpError as exc:
        raise translate_http_error(exc, side) from exc


class GoogleTab:
    """A single worksheet of a spreadsheet."""

    def __init__(self, service, spreadsheet_id: str, tab_id: int, name: str) -> None:
        self._service = service
        self.spreadsheet_id = spreadsheet_id
        self.tab_id = tab_id
        self.name = name

    def _batch_update(self, requests: List[Dict[str, Any]]) -> Dict[str, Any]:
        request = self._service.spreadsheets().batchUpdate(
            spreadsheetId=self.spreadsheet_id, body={"requests": requests}
        )
        return _execute(request, "destination")

    def clear(self) -> None:
        request = self._service.spreadsheets().values().clear(
            spreadsheetId=self.spreadsheet_id, range=quote_title(self.name), body={}
        )
        _execute(request, "destination")

    def delete(self) -> None:
        self._batch_update([{"deleteSheet": {"sheetId": self.tab_id}}])

    def rename(self, name: str) -> None:
        self._batch_update(
            [
                {
                    "updateSheetProperties": {
                        "properties": {"sheetId": self.tab_id, "title": name},
                        "fields": "title",
                    }
                }
            ]
        )
        self.name = name

    def write_rows(self, start_row: int, rows: Sequence[Sequence[Any]]) -> None:
        if start_row < 1:
            raise ValueError("Row index must be >= 1")
        request = self._service.spreadsheets().values().update(
            spreadsheetId=self.spreadsheet_id,
            range=f"{quote_title(self.name)}!A{start_row}",
            valueInputOption="RAW",
            body={"majorDimension": "ROWS", "values": [list(row) for row in rows]},
        )
        _execute(request, "destination")

    def read_all_rows(self) -> List[List[Any]]:
        request = self._service.spreadsheets().values().get(
            spreadsheetId=self.spreadsheet_id, range=quote_title(self.name), majorDimension="ROWS"
        )
        return _execute(request, "source").get("values", [])

    def last_row(self) -> int:
        # The values API trims trailing empty rows
        return len(self.read_all_rows())

    def copy_into(self, workbook: "GoogleWorkbook") -> "GoogleTab":
        """Duplicate this tab, formatting included, into ``workbook``."""

        request = self._service.spreadsheets().sheets().copyTo(
            spreadsheetId=self.spreadsheet_id,
            sheetId=self.tab_id,
            body={"destinationSpreadsheetId": workbook.id},
        )
        properties = _execute(request, "destination")
        return GoogleTab(self._service, workbook.id, properties["sheetId"], properties["title"])

    def auto_resize_columns(self, column_count: int) -> None:
        self._batch_update(
            [
                {
                    "autoResizeDimensions": {
                        "dimensions": {
                            "sheetId": self.tab_id,
                            "dimension": "COLUMNS",
                            "startIndex": 0,
                            "endIndex": column_count,
                        }
                    }
                }
            ]
        )


class GoogleWorkbook:
    """A spreadsheet; tab metadata is fetched on every lookup."""

    def __init__(self, service, spreadsheet_id: str) -> None:
        self._service = service
        self.id = spreadsheet_id

    def tabs(self) -> List[GoogleTab]:
        request = self._service.spreadsheets().get(
            spreadsheetId=self.id, fields="sheets.properties(sheetId,title)"
        )
        response = _execute(request, "source")
        return [
            GoogleTab(self._service, self.id, sheet["properties"]["sheetId"], sheet["properties"]["title"])
            for sheet in response.get("sheets", [])
        ]

    def tab(self, name: str) -> Optional[GoogleTab]:
        return next((tab for tab in self.tabs() if tab.name == name), None)

    def create_tab(self, name: str) -> GoogleTab:
        request = self._service.spreadsheets().batchUpdate(
            spreadsheetId=self.id,
            body={"requests": [{"addSheet": {"properties": {"title": name}}}]},
        )
        response = _execute(request, "destination")
        try:
            properties = response["replies"][0]["addSheet"]["properties"]
        except (KeyError, IndexError) as exc:
            raise DestinationError(f"Could not create tab '{name}': unexpected response", exc) from exc
        logger.debug("Created tab %s (%s) in %s", name, properties["sheetId"], self.id)
        return GoogleTab(self._service, self.id, properties["sheetId"], properties["title"])


class GoogleSheetStore:
    """Opens spreadsheets by ID or URL through a Sheets API v4 service."""

    def __init__(self, service) -> None:
        self._service = service

    def open(self, id_or_url: str) -> GoogleWorkbook:
        return GoogleWorkbook(self._service, resolve_resource_id(id_or_url))


__all__ = ["GoogleSheetStore", "GoogleTab", "GoogleWorkbook", "quote_title"]
