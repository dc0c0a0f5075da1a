"""
Thin HTTP client for the account endpoints the controllers talk to.
"""

from __future__ import annotations

from typing import Optional

import requests

REQUEST_TIMEOUT = 15


class ApiClient:
    """Cookie-carrying session against ``<base_url>/api``."""

    def __init__(
        self,
        base_url: str,
        *,
        api_prefix: str = "/api",
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/") + api_prefix
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        response = self.session.request(
            method, f"{self.base_url}{path}", timeout=REQUEST_TIMEOUT, **kwargs
        )
        response.raise_for_status()
        return response.json()

    def login(self, email: str, password: str) -> dict:
        return self._request("POST", "/auth/login", json={"email": email, "password": password})["user"]

    def logout(self) -> None:
        self._request("POST", "/auth/logout")

    def get_me(self) -> dict:
        return self._request("GET", "/auth/me")["user"]

    def update_me(self, payload: dict) -> dict:
        return self._request("PUT", "/auth/me", json=payload)["user"]

    def update_preferences(self, changes: dict) -> dict:
        return self._request("PATCH", "/auth/settings/preferences", json=changes)["user"]
