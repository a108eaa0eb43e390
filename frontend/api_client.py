"""Thin httpx wrapper over the Shiftbook API used by the Streamlit pages."""
import logging
import os
from typing import Optional

import httpx

API_URL = os.getenv("API_URL", "http://localhost:8000")

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class ShiftbookApi:
    def __init__(self, token: Optional[str] = None, client: Optional[httpx.Client] = None):
        self.client = client or httpx.Client(base_url=API_URL, timeout=10.0)
        self.token = token

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        res = self.client.request(method, path, headers=headers, **kwargs)
        if res.status_code >= 400:
            try:
                detail = res.json().get("detail", res.text)
            except ValueError:
                detail = res.text
            logger.warning("%s %s -> %s: %s", method, path, res.status_code, detail)
            raise ApiError(res.status_code, str(detail))
        return res

    def _json(self, method: str, path: str, **kwargs):
        return self._request(method, path, **kwargs).json()

    # --- Auth ---

    def login(self, email: str, password: str) -> dict:
        data = self._json("POST", "/auth/login", json={"email": email, "password": password})
        self.token = data["access_token"]
        return data

    def register(self, email: str, password: str, name: str) -> dict:
        return self._json("POST", "/auth/register", json={"email": email, "password": password, "name": name})

    def forgot_password(self, email: str) -> str:
        return self._json("POST", "/auth/forgot-password", json={"email": email})["message"]

    def reset_password(self, token: str, new_password: str) -> str:
        return self._json("POST", "/auth/reset-password", json={"token": token, "new_password": new_password})["message"]

    # --- Data ---

    def employers(self) -> list[dict]:
        return self._json("GET", "/employers")

    def sites(self) -> list[dict]:
        return self._json("GET", "/sites")

    def dashboard(self) -> dict:
        return self._json("GET", "/dashboard")

    def history(self, month: str, status: str = "all", employer: str = "", site: str = "") -> dict:
        return self._json("GET", "/history", params={"month": month, "status": status,
                                                     "employer": employer, "site": site})

    def chart(self, view: str = "week") -> list[dict]:
        return self._json("GET", "/charts", params={"view": view})

    def get_shift(self, shift_id: str) -> dict:
        return self._json("GET", f"/shifts/{shift_id}")

    def save_shift(self, form: dict, shift_id: Optional[str] = None) -> dict:
        if shift_id:
            return self._json("PUT", f"/shifts/{shift_id}", json=form)
        return self._json("POST", "/shifts", json=form)

    def update_shift(self, shift_id: str, changes: dict) -> dict:
        return self._json("PATCH", f"/shifts/{shift_id}", json=changes)

    def delete_shift(self, shift_id: str) -> None:
        self._request("DELETE", f"/shifts/{shift_id}")

    def clock_in(self, shift_id: str) -> dict:
        return self._json("POST", f"/shifts/{shift_id}/clock-in")

    def clock_out(self, shift_id: str) -> dict:
        return self._json("POST", f"/shifts/{shift_id}/clock-out")

    def import_csv(self, filename: str, content: bytes) -> dict:
        return self._json("POST", "/import", files={"file": (filename, content, "text/csv")})

    def export_csv(self, month: str, status: str = "all", employer: str = "", site: str = "") -> bytes:
        res = self._request("GET", "/export", params={"month": month, "status": status,
                                                      "employer": employer, "site": site})
        return res.content
