from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import AuthenticationError, TransportFailure
from .models import CollectionRef, Page
from .retry import RetryConfig, run_with_retries

API_PREFIX = "/api.php/v1"
USER_AGENT = "zentaobugs-rest/0.2.0"
HTTP_ERROR_STATUS = 400
HTTP_UNAUTHORIZED = 401
DEFAULT_TIMEOUT = 30.0


def _retry_after(response: requests.Response) -> float | None:
    raw = response.headers.get("Retry-After") if response.headers else None
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


@dataclass
class ZenTaoRestClient:
    """Blocking REST client for the ZenTao ``api.php/v1`` endpoints.

    The session token is written by :meth:`login` and read by every other
    call; callers serialize access through the single-flight queue.
    """

    base_url: str
    account: str
    password: str = field(repr=False)
    timeout: float = DEFAULT_TIMEOUT
    session: requests.Session | None = None
    retry: RetryConfig | None = None
    token: str = field(default="", repr=False)
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Content-Type", "application/json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    # ---- transport ------------------------------------------------------
    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}{API_PREFIX}/{path.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        headers = dict(self._session.headers)
        if self.token:
            headers["Token"] = self.token
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        url = self._url(path)

        def _run() -> requests.Response:
            try:
                return self._session.request(
                    method,
                    url,
                    params=dict(params) if params else None,
                    json=json_body,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                raise TransportFailure(
                    f"ZenTao API {method} {url} failed: {exc}", transient=True
                ) from exc

        def _checked() -> requests.Response:
            response = _run()
            if response.status_code >= HTTP_ERROR_STATUS:
                error_cls = (
                    AuthenticationError
                    if response.status_code == HTTP_UNAUTHORIZED
                    else TransportFailure
                )
                raise error_cls(
                    f"ZenTao API {method} {url} failed with {response.status_code}",
                    status=response.status_code,
                    response_text=response.text,
                    retry_after=_retry_after(response),
                )
            return response

        response = run_with_retries(_checked, cfg=self.retry)
        if not response.text:
            return None
        try:
            data = response.json()
        except ValueError as exc:
            raise TransportFailure(
                f"ZenTao API {method} {url} returned invalid JSON",
                status=response.status_code,
                response_text=response.text,
                transient=False,
            ) from exc
        if isinstance(data, dict) and data.get("error"):
            raise TransportFailure(
                f"ZenTao API {method} {url} returned error: {data['error']}",
                status=response.status_code,
                response_text=response.text,
                transient=False,
            )
        return data

    # ---- session --------------------------------------------------------
    def login(self) -> str:
        try:
            data = self._request(
                "POST", "/tokens", json_body={"account": self.account, "password": self.password}
            )
        except TransportFailure as exc:
            raise AuthenticationError(
                f"Login failed: {exc}", status=exc.status, response_text=exc.response_text
            ) from exc
        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthenticationError("Login response missing token")
        self.token = token
        return token

    # ---- collections ----------------------------------------------------
    def fetch_page(self, ref: CollectionRef, page: int, page_size: int) -> Page:
        params: dict[str, Any] = {**ref.params(), "page": page, "limit": page_size}
        data = self._request("GET", ref.path, params=params)
        if not isinstance(data, dict):
            raise TransportFailure(
                f"ZenTao API GET {ref.path} page {page} returned no object", transient=False
            )
        entries = data.get(ref.result_key)
        if not isinstance(entries, list):
            # an empty collection still carries an empty list under its key
            raise TransportFailure(
                f"ZenTao API GET {ref.path} page {page} has no {ref.result_key!r} list",
                response_text=str(data)[:200],
                transient=False,
            )
        records = tuple(ref.factory(entry) for entry in entries if isinstance(entry, dict))
        return Page(
            records=records,
            requested_page=page,
            page_size=page_size,
            served_page=_as_int(data.get("page")),
            reported_total=_as_int(data.get("total")),
        )

    def fetch_detail(self, path: str, item_id: int | str) -> dict[str, Any]:
        data = self._request("GET", f"{path.rstrip('/')}/{item_id}")
        if not isinstance(data, dict):
            raise TransportFailure(
                f"ZenTao API GET {path}/{item_id} returned no object", transient=False
            )
        return data

    def mutate(
        self, path: str, item_id: int | str, payload: Mapping[str, Any], *, action: str = ""
    ) -> dict[str, Any]:
        target = f"{path.rstrip('/')}/{item_id}"
        if action:
            target = f"{target}/{action}"
        data = self._request("POST", target, json_body=dict(payload))
        return data if isinstance(data, dict) else {}

    # ---- bug operations -------------------------------------------------
    def get_bug(self, bug_id: int) -> dict[str, Any]:
        return self.fetch_detail("/bugs", bug_id)

    def resolve_bug(self, bug_id: int, comment: str = "") -> dict[str, Any]:
        payload: dict[str, Any] = {"resolution": "fixed"}
        if comment:
            payload["comment"] = str(comment)
        return self.mutate("/bugs", bug_id, payload, action="resolve")


__all__ = ["API_PREFIX", "ZenTaoRestClient"]
