# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Microsoft Graph session for intunesync.

GraphSession loads INTUNE_* environment variables (optionally from .env),
performs the client-credentials flow and caches the access token, refreshing
it shortly before it expires. One session object is created per run and
passed explicitly to the Graph client.

Environment:

    INTUNE_TENANT_ID
    INTUNE_CLIENT_ID
    INTUNE_CLIENT_SECRET

Values passed to the constructor take precedence over the environment.
"""

from __future__ import annotations

import getpass
import os
import sys
import time

from dotenv import load_dotenv
import requests

from intunesync.exceptions import AuthError
from intunesync.logging import get_global_logger

GRAPH_BASE = "https://graph.microsoft.com/beta"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
PROBE_PATH = "/deviceAppManagement/mobileApps?$top=1&$select=id"
AUTH_FAILURE_STATUSES = (401, 403)


class GraphSession:
    """
    Holds tenant credentials and a cached Microsoft Graph access token.
    """

    def __init__(
        self,
        tenant_id: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        *,
        env_prefix: str = "INTUNE_",
        refresh_margin: int = 60,
        timeout: int = 30,
    ) -> None:
        """
        :param env_prefix: Prefix used for environment variables.
        :param refresh_margin: Seconds before real expiry when we proactively refresh.
        """
        load_dotenv()
        self.env_prefix = env_prefix
        self.refresh_margin = refresh_margin
        self.timeout = timeout
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._token: str | None = None
        self._token_expires_at: int | None = None  # UNIX epoch

    # --------------------------------------------------------------------- #
    # Credentials
    # --------------------------------------------------------------------- #
    def _env(self, key: str) -> str:
        full_key = f"{self.env_prefix}{key}"
        value = os.getenv(full_key)
        if not value:
            raise AuthError(f"Missing required environment variable: {full_key}")
        return value

    @property
    def tenant_id(self) -> str:
        return self._tenant_id or self._env("TENANT_ID")

    @property
    def client_id(self) -> str:
        return self._client_id or self._env("CLIENT_ID")

    def _client_secret_value(self) -> str:
        if self._client_secret:
            return self._client_secret
        try:
            return self._env("CLIENT_SECRET")
        except AuthError:
            if not sys.stdin.isatty():
                raise
            self._client_secret = getpass.getpass("Enter your client secret: ")
            return self._client_secret

    # --------------------------------------------------------------------- #
    # Token handling
    # --------------------------------------------------------------------- #
    def _token_expired(self) -> bool:
        if self._token is None or self._token_expires_at is None:
            return True
        return time.time() >= (self._token_expires_at - self.refresh_margin)

    def _fetch_token(self) -> None:
        """
        Performs the client-credentials flow and stores
        self._token and self._token_expires_at.
        """
        logger = get_global_logger()
        url = f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token"
        data = {
            "client_id": self.client_id,
            "client_secret": self._client_secret_value(),
            "grant_type": "client_credentials",
            "scope": GRAPH_SCOPE,
        }

        logger.verbose("AUTH", f"Requesting token for tenant {self.tenant_id}")
        try:
            response = requests.post(url, data=data, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as err:
            raise AuthError(f"Token request failed: {err}") from err

        token_data = response.json()
        try:
            self._token = token_data["access_token"]
        except KeyError as err:
            raise AuthError("Token response has no access_token") from err
        expires_in = int(token_data.get("expires_in", 0))
        self._token_expires_at = int(time.time()) + expires_in
        logger.debug("AUTH", f"Token valid for {expires_in}s")

    def get_token(self) -> str:
        """
        Returns a valid access token, refreshing it when necessary.

        Raises AuthError if credentials are missing or the token request fails.
        """
        if self._token_expired():
            self._fetch_token()
        return self._token  # type: ignore[return-value]

    def invalidate(self) -> None:
        self._token = None
        self._token_expires_at = None

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.get_token()}",
            "Content-Type": "application/json",
        }

    # --------------------------------------------------------------------- #
    # Validation
    # --------------------------------------------------------------------- #
    def _probe(self) -> int:
        response = requests.get(
            GRAPH_BASE + PROBE_PATH, headers=self.headers(), timeout=self.timeout
        )
        return response.status_code

    def ensure_valid(self) -> bool:
        """
        Make sure the session can talk to Graph, reconnecting once if needed.

        A cheap read-only probe is issued with the current token. On 401 or
        403 the token is dropped and fetched again, then probed once more.
        Safe to call any number of times.

        Only a token failure (AuthError) or a second 401/403 counts as a lost
        session. Connection errors and 5xx answers are logged and the session
        is kept; the next Graph call reports them against the current app.

        Returns True unless the session is lost.
        """
        logger = get_global_logger()
        for attempt in (1, 2):
            try:
                status = self._probe()
            except AuthError as err:
                logger.warning("AUTH", str(err))
                return False
            except requests.RequestException as err:
                logger.warning("AUTH", f"Session probe failed: {err}; keeping session")
                return True

            if status in AUTH_FAILURE_STATUSES:
                if attempt == 1:
                    logger.verbose("AUTH", f"Session probe returned {status}; reconnecting")
                    self.invalidate()
                    continue
                return False
            if status >= 400:
                logger.warning("AUTH", f"Session probe returned {status}; keeping session")
            return True
        return False
