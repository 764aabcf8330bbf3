"""
Google Drive Connector
Downloads Drive files, exporting Google Workspace formats to text
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from app.models.records import ConnectorType
from app.services.sync.providers.base import ConnectorFetcher, FetchedFile

logger = logging.getLogger(__name__)

DRIVE_API = "https://www.googleapis.com/drive/v3"
FILE_FIELDS = "id,name,mimeType,size,createdTime,modifiedTime,webViewLink,owners,trashed"


def get_export_mime_type(google_mime_type: str) -> Optional[str]:
    """
    Export MIME type for Google Workspace files (None for regular files).
    """
    export_map = {
        "application/vnd.google-apps.document": "text/plain",  # Docs → plain text
        "application/vnd.google-apps.spreadsheet": "text/csv",  # Sheets → CSV
        "application/vnd.google-apps.presentation": "text/plain",  # Slides → plain text
    }
    return export_map.get(google_mime_type)


def normalize_drive_file(raw_file: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize Drive file metadata.

    Drive file structure:
    {
        "id": "1BxiMVs0XRA5nFMdKvBdBZjgmUUqptlbs74OgvE2upms",
        "name": "Q4 Financial Report.pdf",
        "mimeType": "application/pdf",
        "modifiedTime": "2024-01-16T14:20:00.000Z",
        "size": "245678",
        "webViewLink": "https://drive.google.com/file/d/...",
        "owners": [{"emailAddress": "user@example.com", "displayName": "John Doe"}]
    }
    """
    modified_at = None
    if raw_file.get("modifiedTime"):
        try:
            modified_at = datetime.fromisoformat(raw_file["modifiedTime"].replace("Z", "+00:00")).isoformat()
        except ValueError as e:
            logger.warning(f"Failed to parse modifiedTime: {e}")

    owner_email = ""
    if raw_file.get("owners"):
        owner_email = raw_file["owners"][0].get("emailAddress", "")

    return {
        "file_id": raw_file.get("id"),
        "file_name": raw_file.get("name") or raw_file.get("id"),
        "mime_type": raw_file.get("mimeType") or "application/octet-stream",
        "size": int(raw_file["size"]) if raw_file.get("size") else None,
        "web_view_link": raw_file.get("webViewLink"),
        "modified_at": modified_at,
        "owner_email": owner_email,
        "is_trashed": raw_file.get("trashed", False),
    }


class GoogleDriveFetcher(ConnectorFetcher):
    """external_ref is the Drive file id."""

    connector_type = ConnectorType.GOOGLE_DRIVE

    async def fetch(self, external_ref: str, access_token: Optional[str]) -> FetchedFile:
        headers = {"Authorization": f"Bearer {access_token}"}

        meta_response = await self.request(
            "GET", f"{DRIVE_API}/files/{external_ref}", "file metadata",
            params={"fields": FILE_FIELDS}, headers=headers
        )
        normalized = normalize_drive_file(meta_response.json())
        original_mime = normalized["mime_type"]
        export_mime = get_export_mime_type(original_mime)

        if export_mime:
            logger.info(f"   📥 Exporting: {normalized['file_name']} as {export_mime}")
            response = await self.request(
                "GET", f"{DRIVE_API}/files/{external_ref}/export", "file export",
                params={"mimeType": export_mime}, headers=headers
            )
            mime_type = export_mime
        else:
            logger.info(f"   📥 Downloading: {normalized['file_name']}")
            response = await self.request(
                "GET", f"{DRIVE_API}/files/{external_ref}", "file download",
                params={"alt": "media"}, headers=headers
            )
            mime_type = original_mime

        return FetchedFile(
            filename=normalized["file_name"],
            title=normalized["file_name"],
            data=response.content,
            mime_type=mime_type,
            metadata={
                "web_view_link": normalized["web_view_link"],
                "modified_at": normalized["modified_at"],
                "owner_email": normalized["owner_email"],
                "original_mime_type": original_mime,
            },
        )
