# src/stream_stash_bff/drive_appdata.py

import json
from typing import Optional

import httpx

from .errors import ProviderRejected, ProviderTransportError
from .log import get_logger

logger = get_logger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
APPDATA_FOLDER = "appDataFolder"
MEDIA_DB_FILE_NAME = "media_db.json"
EMPTY_MEDIA_DB = "{}"


class MediaDocumentStore:
    """
    The user's media list, kept as one JSON file in their Drive appDataFolder.
    Only reachable with the drive.appdata scope, invisible in the Drive UI.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        files_url: str = DRIVE_FILES_URL,
        upload_url: str = DRIVE_UPLOAD_URL,
        file_name: str = MEDIA_DB_FILE_NAME,
    ) -> None:
        self.http_client = http_client
        self.files_url = files_url
        self.upload_url = upload_url
        self.file_name = file_name

    async def _send(self, request: httpx.Request, operation: str) -> httpx.Response:
        try:
            response = await self.http_client.send(request)
        except httpx.HTTPError as e:
            raise ProviderTransportError(f"HTTP error talking to Drive: {e!r}", operation) from e
        if response.status_code in (401, 403):
            raise ProviderRejected(
                f"Drive refused access ({response.status_code}): {response.text}", operation
            )
        if not response.is_success:
            raise ProviderTransportError(
                f"Drive answered {response.status_code}: {response.text}", operation
            )
        return response

    @staticmethod
    def _auth(access_token: str) -> dict:
        return {"Authorization": f"Bearer {access_token}"}

    async def find_file_id(self, access_token: str) -> Optional[str]:
        operation = "drive.find_file"
        request = self.http_client.build_request(
            "GET",
            self.files_url,
            params={
                "spaces": APPDATA_FOLDER,
                "q": f"name = '{self.file_name}' and trashed = false",
                "fields": "files(id, name)",
                "pageSize": "1",
            },
            headers=self._auth(access_token),
        )
        response = await self._send(request, operation)
        try:
            files = response.json().get("files", [])
        except (ValueError, AttributeError) as e:
            raise ProviderTransportError(f"Could not parse Drive file list: {e}", operation) from e
        if not files:
            return None
        return files[0]["id"]

    async def read(self, access_token: str) -> str:
        """Returns the stored document, or an empty JSON object if none exists yet."""
        file_id = await self.find_file_id(access_token)
        if file_id is None:
            return EMPTY_MEDIA_DB
        request = self.http_client.build_request(
            "GET",
            f"{self.files_url}/{file_id}",
            params={"alt": "media"},
            headers=self._auth(access_token),
        )
        response = await self._send(request, "drive.read")
        return response.text

    async def _create(self, access_token: str) -> str:
        operation = "drive.create"
        request = self.http_client.build_request(
            "POST",
            self.files_url,
            json={"name": self.file_name, "parents": [APPDATA_FOLDER], "mimeType": "application/json"},
            params={"fields": "id"},
            headers=self._auth(access_token),
        )
        response = await self._send(request, operation)
        try:
            file_id = response.json()["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderTransportError(f"Drive create returned no file id: {e}", operation) from e
        logger.info("Created media document", operation=operation)
        return file_id

    async def write(self, access_token: str, media: str) -> None:
        """
        Replace the document with ``media``, creating the file on first write.
        Raises ValueError if ``media`` is not JSON.
        """
        json.loads(media)

        file_id = await self.find_file_id(access_token)
        if file_id is None:
            file_id = await self._create(access_token)

        request = self.http_client.build_request(
            "PATCH",
            f"{self.upload_url}/{file_id}",
            params={"uploadType": "media"},
            content=media.encode("utf-8"),
            headers={**self._auth(access_token), "Content-Type": "application/json"},
        )
        await self._send(request, "drive.write")
