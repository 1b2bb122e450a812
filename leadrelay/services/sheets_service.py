"""
Google Sheets delivery - appends one row per lead to the sales spreadsheet.

The client is built once at startup. Without credentials or a spreadsheet id
there is no client at all, and the pipeline records the sheet leg as not
delivered.
"""

import base64
import binascii
import json
import os
from datetime import datetime, timezone
from typing import Any, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build

from leadrelay.config import Settings
from leadrelay.logging_config import get_logger
from leadrelay.schemas.lead import LeadFields
from leadrelay.services.errors import DeliveryError

logger = get_logger("sheets_service")

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def load_service_account_info(raw: str) -> Optional[dict]:
    """
    Decode service account credentials.

    Accepts, in order: a path to a JSON key file, a base64-encoded JSON key,
    or the JSON key itself.

    Returns:
        Credentials dict, or None if the value cannot be decoded
    """
    raw = (raw or "").strip()
    if not raw:
        return None

    if os.path.exists(raw):
        with open(raw, encoding="utf-8") as handle:
            return json.load(handle)

    try:
        decoded = base64.b64decode(raw, validate=True).decode("utf-8")
        info = json.loads(decoded)
        if isinstance(info, dict):
            return info
    except (binascii.Error, UnicodeDecodeError, ValueError):
        pass

    try:
        info = json.loads(raw)
    except ValueError:
        return None
    return info if isinstance(info, dict) else None


class SheetsClient:
    """Appends lead rows with process-wide credentials.

    Each append builds its own service: the googleapiclient transport is not
    thread-safe and pipeline runs share this client.
    """

    def __init__(self, credentials: Any, spreadsheet_id: str, range_name: str = "Leads!A:F"):
        self.credentials = credentials
        self.spreadsheet_id = spreadsheet_id
        self.range_name = range_name

    def _get_service(self):
        return build("sheets", "v4", credentials=self.credentials, cache_discovery=False)

    def append_lead(self, fields: LeadFields, timestamp: Optional[datetime] = None) -> None:
        """
        Append one row: [timestamp, name, phone, priority, contact_method, notes].

        Raises:
            DeliveryError: if the Sheets API call fails
        """
        timestamp = timestamp or datetime.now(timezone.utc)
        values = [fields.sheet_row(timestamp.isoformat())]
        try:
            (
                self._get_service()
                .spreadsheets()
                .values()
                .append(
                    spreadsheetId=self.spreadsheet_id,
                    range=self.range_name,
                    valueInputOption="RAW",
                    insertDataOption="INSERT_ROWS",
                    body={"values": values},
                )
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to append lead to Google Sheets: {e}")
            raise DeliveryError(f"Sheets append failed: {e}", code="sheet_error") from e


def build_sheets_client(settings: Settings) -> Optional[SheetsClient]:
    """
    Build the Sheets client from settings.

    Returns:
        SheetsClient, or None if Sheets is not configured or credentials are invalid
    """
    if not settings.google_service_account_json_base64 or not settings.google_spreadsheet_id:
        logger.info("Google Sheets not configured - sheet delivery disabled")
        return None

    try:
        info = load_service_account_info(settings.google_service_account_json_base64)
        if not info:
            logger.warning("Invalid GOOGLE_SERVICE_ACCOUNT_JSON_BASE64 - sheet delivery disabled")
            return None
        credentials = service_account.Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
    except Exception as e:
        logger.error(f"Failed to initialize Google Sheets service: {e}")
        return None

    return SheetsClient(credentials, settings.google_spreadsheet_id, settings.google_sheets_range)
