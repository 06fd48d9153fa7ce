import logging
from typing import List, Optional

from google.oauth2.credentials import Credentials as UserCredentials
from googleapiclient.discovery import build

from config import config

logger = logging.getLogger("brify_sync.google_auth")


class GoogleAuthService:
    """
    Builds authenticated Google API clients from the OAuth tokens a user
    granted when connecting Drive (user_credentials row).

    The credentials carry the refresh token, so an expired access token is
    refreshed by the HTTP transport on the first 401 and the request is replayed.
    Callers only ever see the final outcome of the call.
    """

    def __init__(
        self,
        scopes: List[str],
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ):
        self.scopes = scopes
        self.creds = None
        self._authenticate(access_token, refresh_token)

    def _authenticate(self, access_token: Optional[str], refresh_token: Optional[str]):
        if not access_token and not refresh_token:
            logger.warning("No user tokens given. Google Services will fail.")
            return

        if refresh_token and not (config.GOOGLE_CLIENT_ID and config.GOOGLE_CLIENT_SECRET):
            logger.warning("GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET not set, expired tokens cannot be refreshed")

        self.creds = UserCredentials(
            token=access_token,
            refresh_token=refresh_token,
            token_uri=config.GOOGLE_TOKEN_URI,
            client_id=config.GOOGLE_CLIENT_ID,
            client_secret=config.GOOGLE_CLIENT_SECRET,
            scopes=self.scopes,
        )
        logger.info("Authentication: using user OAuth credentials")

    def get_service(self, service_name: str, version: str):
        if not self.creds:
            return None
        return build(service_name, version, credentials=self.creds, cache_discovery=False)
