import requests
from typing import Optional


class RemoteSyncClient:
    """Simple REST client for a remote per-user collection store."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def push_collection(self, user_id: str, collection: str, payload: str) -> None:
        resp = requests.post(
            f"{self.base_url}/users/{user_id}/{collection}",
            data=payload,
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()

    def fetch_collection(self, user_id: str, collection: str) -> Optional[str]:
        """Return the stored JSON text, or ``None`` when the remote has none."""
        resp = requests.get(
            f"{self.base_url}/users/{user_id}/{collection}",
            headers=self._headers(),
            timeout=self.timeout,
        )
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.text or None
