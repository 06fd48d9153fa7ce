import logging
from typing import List, Dict, Any, Optional

from services.google_auth import GoogleAuthService
from utils.retry import retry_on_transient_errors

logger = logging.getLogger("brify_sync.drive")

SCOPES = ['https://www.googleapis.com/auth/drive']

FOLDER_MIME_TYPE = 'application/vnd.google-apps.folder'
FILE_FIELDS = 'id, name, mimeType, size, createdTime, modifiedTime, parents'
MAX_RETRIES = 5


class DriveConfigurationError(Exception):
    """Raised when no usable Google credentials are available."""
    pass


class GoogleDriveRealService:
    def __init__(self, auth_service: Optional[GoogleAuthService] = None):
        self.auth_service = auth_service or GoogleAuthService(scopes=SCOPES)
        self.service = self.auth_service.get_service('drive', 'v3')

    def _check_auth(self):
        if not self.service:
            raise DriveConfigurationError(
                "Drive Service configuration error: no Google OAuth tokens available for this user."
            )

    def _execute(self, request_factory):
        """Executes a Drive request with exponential backoff on transient errors."""
        return retry_on_transient_errors(lambda: request_factory().execute(), max_retries=MAX_RETRIES)

    def list_files(self, folder_id: str, page_size: int = 1000) -> List[Dict[str, Any]]:
        """
        Lists the non-trashed direct children of folder_id, following
        nextPageToken until every page has been read.
        """
        self._check_auth()

        query = f"'{folder_id}' in parents and trashed = false"
        files: List[Dict[str, Any]] = []
        page_token = None

        while True:
            results = self._execute(
                lambda: self.service.files().list(
                    q=query,
                    pageSize=page_size,
                    pageToken=page_token,
                    fields=f"nextPageToken, files({FILE_FIELDS})",
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True
                )
            )
            files.extend(results.get('files', []))
            page_token = results.get('nextPageToken')
            if not page_token:
                break

        return files

    def get_file(self, file_id: str) -> Dict[str, Any]:
        self._check_auth()
        return self._execute(
            lambda: self.service.files().get(
                fileId=file_id,
                fields=f'{FILE_FIELDS}, trashed',
                supportsAllDrives=True
            )
        )

    def download_file(self, file_id: str) -> bytes:
        """Downloads the raw content of a binary file (alt=media)."""
        self._check_auth()
        return self._execute(
            lambda: self.service.files().get_media(fileId=file_id, supportsAllDrives=True)
        )

    def list_permissions(self, file_id: str) -> List[Dict[str, Any]]:
        self._check_auth()
        result = self._execute(
            lambda: self.service.permissions().list(
                fileId=file_id,
                fields='permissions(id,type,role,emailAddress,displayName)',
                supportsAllDrives=True
            )
        )
        return result.get('permissions', [])
