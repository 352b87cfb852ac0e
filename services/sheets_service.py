"""
Tabular store backends for the submission log.

A ``Spreadsheet`` resolves tabs (``Sheet``) by title; the pipeline only needs
to read and write the header row and to insert a row directly under it.
Two backends are provided: the Google Sheets v4 REST API and an in-memory
store used for local development and tests.
"""
import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from services.errors import SheetsBackendError

logger = logging.getLogger("backend.sheets")

SHEETS_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
OAUTH_TOKEN = "https://oauth2.googleapis.com/token"
REQUEST_TIMEOUT = 20


def column_letter(index: int) -> str:
    """1-based column index to A1 letters (1 -> A, 27 -> AA)."""
    letters = ""
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def _trim_trailing_blanks(values: List[Any]) -> List[Any]:
    out = list(values)
    while out and (out[-1] is None or out[-1] == ""):
        out.pop()
    return out


class Sheet(ABC):
    """One tab of a spreadsheet. Row and column positions are 1-based."""

    title: str = ""

    @abstractmethod
    def read_header(self) -> List[Any]:
        ...

    @abstractmethod
    def clear_header(self, columns: int) -> None:
        ...

    @abstractmethod
    def write_header(self, values: List[Any]) -> None:
        ...

    @abstractmethod
    def insert_row_after_header(self, values: List[Any]) -> None:
        """Insert a new row 2 (shifting data down) and fill it in one write."""


class Spreadsheet(ABC):
    @abstractmethod
    def get_sheet(self, name: str = "") -> Optional[Sheet]:
        """Return the tab titled ``name``, the first tab when ``name`` is empty, or None."""


# -----------------------------
# In-memory backend
# -----------------------------

class MemorySheet(Sheet):
    def __init__(self, title: str, rows: Optional[List[List[Any]]] = None):
        self.title = title
        self.rows: List[List[Any]] = [list(r) for r in (rows or [])]
        self._lock = threading.Lock()

    def read_header(self) -> List[Any]:
        with self._lock:
            if not self.rows:
                return []
            return _trim_trailing_blanks(self.rows[0])

    def clear_header(self, columns: int) -> None:
        with self._lock:
            if not self.rows:
                return
            header = self.rows[0]
            for idx in range(min(columns, len(header))):
                header[idx] = ""

    def write_header(self, values: List[Any]) -> None:
        with self._lock:
            if not self.rows:
                self.rows.append([])
            header = self.rows[0]
            if len(header) < len(values):
                header.extend([""] * (len(values) - len(header)))
            for idx, value in enumerate(values):
                header[idx] = value

    def insert_row_after_header(self, values: List[Any]) -> None:
        with self._lock:
            if not self.rows:
                self.rows.append([])
            self.rows.insert(1, list(values))


class MemorySpreadsheet(Spreadsheet):
    def __init__(self, sheets: Optional[List[MemorySheet]] = None):
        self.sheets: List[MemorySheet] = list(sheets) if sheets is not None else [MemorySheet("Sheet1")]

    def get_sheet(self, name: str = "") -> Optional[Sheet]:
        if not name:
            return self.sheets[0] if self.sheets else None
        for sheet in self.sheets:
            if sheet.title == name:
                return sheet
        return None


# -----------------------------
# Google Sheets REST backend
# -----------------------------

class GoogleCredentials:
    """OAuth access token holder; refreshes with the refresh token when close to expiry."""

    def __init__(
        self,
        access_token: str = "",
        refresh_token: Optional[str] = None,
        client_id: str = "",
        client_secret: str = "",
        session: Optional[requests.Session] = None,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.client_id = client_id
        self.client_secret = client_secret
        self.expiry = 0
        self._session = session or requests.Session()
        self._lock = threading.Lock()

    def token(self) -> str:
        with self._lock:
            now = int(time.time())
            if self.access_token and self.expiry and now < (self.expiry - 60):
                return self.access_token
            if not self.refresh_token or not self.client_id or not self.client_secret:
                # Try using current access token even if expired
                if not self.access_token:
                    raise SheetsBackendError("Google Sheets credentials are not configured")
                return self.access_token
            data = {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": self.refresh_token,
            }
            try:
                resp = self._session.post(OAUTH_TOKEN, data=data, timeout=REQUEST_TIMEOUT)
            except requests.RequestException as e:
                raise SheetsBackendError(f"Google token refresh failed: {e}")
            if resp.status_code != 200:
                logger.warning("Google token refresh failed: %s", resp.text)
                if not self.access_token:
                    raise SheetsBackendError("Google token refresh failed")
                return self.access_token
            payload = resp.json()
            self.access_token = payload.get("access_token") or self.access_token
            expires_in = payload.get("expires_in")
            self.expiry = now + int(expires_in or 3600)
            return self.access_token


class GoogleSheetsClient:
    def __init__(self, spreadsheet_id: str, credentials: GoogleCredentials, session: Optional[requests.Session] = None):
        if not spreadsheet_id:
            raise SheetsBackendError("GOOGLE_SPREADSHEET_ID not configured")
        self.spreadsheet_id = spreadsheet_id
        self.credentials = credentials
        self.session = session or requests.Session()

    def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{SHEETS_BASE}/{self.spreadsheet_id}{path}"
        headers = {
            "Authorization": f"Bearer {self.credentials.token()}",
            "Content-Type": "application/json",
        }
        try:
            data = json.dumps(body, allow_nan=False) if body is not None else None
        except ValueError as e:
            raise SheetsBackendError(f"Cannot encode Google Sheets request: {e}")
        try:
            r = self.session.request(
                method,
                url,
                params=params,
                headers=headers,
                data=data,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise SheetsBackendError(f"Google Sheets request failed: {e}")
        if r.status_code not in (200, 201):
            logger.warning("Google Sheets %s %s failed: %s %s", method, path, r.status_code, r.text)
            raise SheetsBackendError(f"Google Sheets {method} failed with status {r.status_code}")
        try:
            return r.json() if r.text else {}
        except ValueError:
            return {}

    def values_path(self, rng: str, suffix: str = "") -> str:
        return f"/values/{requests.utils.quote(rng, safe='')}{suffix}"


def _a1(title: str, cells: str) -> str:
    escaped = title.replace("'", "''")
    return f"'{escaped}'!{cells}"


def _extended_value(value: Any) -> Dict[str, Any]:
    """Map a cell value to a Sheets ExtendedValue."""
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, (int, float)):
        return {"numberValue": value}
    return {"stringValue": "" if value is None else str(value)}


class GoogleSheet(Sheet):
    def __init__(self, client: GoogleSheetsClient, title: str, sheet_id: int):
        self.client = client
        self.title = title
        self.sheet_id = sheet_id

    def read_header(self) -> List[Any]:
        data = self.client.request("GET", self.client.values_path(_a1(self.title, "1:1")))
        rows = data.get("values") or []
        return _trim_trailing_blanks(rows[0]) if rows else []

    def clear_header(self, columns: int) -> None:
        rng = _a1(self.title, f"A1:{column_letter(columns)}1")
        self.client.request("POST", self.client.values_path(rng, ":clear"), body={})

    def write_header(self, values: List[Any]) -> None:
        rng = _a1(self.title, "A1")
        body = {"range": rng, "majorDimension": "ROWS", "values": [list(values)]}
        self.client.request("PUT", self.client.values_path(rng), params={"valueInputOption": "RAW"}, body=body)

    def insert_row_after_header(self, values: List[Any]) -> None:
        # Insert and fill in one batchUpdate: Sheets applies all requests or none
        cells = {"values": [{"userEnteredValue": _extended_value(v)} for v in values]}
        body = {
            "requests": [
                {
                    "insertDimension": {
                        "range": {
                            "sheetId": self.sheet_id,
                            "dimension": "ROWS",
                            "startIndex": 1,
                            "endIndex": 2,
                        },
                        "inheritFromBefore": False,
                    }
                },
                {
                    "updateCells": {
                        "start": {"sheetId": self.sheet_id, "rowIndex": 1, "columnIndex": 0},
                        "rows": [cells],
                        "fields": "userEnteredValue",
                    }
                },
            ]
        }
        self.client.request("POST", ":batchUpdate", body=body)


class GoogleSpreadsheet(Spreadsheet):
    def __init__(self, client: GoogleSheetsClient):
        self.client = client

    def get_sheet(self, name: str = "") -> Optional[Sheet]:
        # Looked up per request: tabs may be renamed or reordered between submissions
        data = self.client.request("GET", "", params={"fields": "sheets.properties"})
        for idx, entry in enumerate(data.get("sheets") or []):
            props = entry.get("properties") or {}
            title = props.get("title") or ""
            if (not name and idx == 0) or (name and title == name):
                return GoogleSheet(self.client, title, int(props.get("sheetId") or 0))
        return None


def build_spreadsheet_from_env() -> Spreadsheet:
    backend = (os.getenv("STORE_BACKEND") or "google_sheets").strip().lower()
    if backend == "memory":
        logger.warning("STORE_BACKEND=memory: submissions are kept in process memory only")
        return MemorySpreadsheet()
    session = requests.Session()
    credentials = GoogleCredentials(
        access_token=os.getenv("GOOGLE_SHEETS_ACCESS_TOKEN", ""),
        refresh_token=os.getenv("GOOGLE_SHEETS_REFRESH_TOKEN") or None,
        client_id=os.getenv("GOOGLE_CLIENT_ID", ""),
        client_secret=os.getenv("GOOGLE_CLIENT_SECRET", ""),
        session=session,
    )
    client = GoogleSheetsClient(os.getenv("GOOGLE_SPREADSHEET_ID", ""), credentials, session=session)
    return GoogleSpreadsheet(client)
