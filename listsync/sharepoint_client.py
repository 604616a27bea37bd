from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import urlparse

import requests

from listsync.errors import RemoteConnectionError, RemoteRequestError
from listsync.values import FieldValue, parse_datetime

_ISO_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z?$")
_METADATA_KEYS = {"Id", "ID", "GUID", "__metadata"}
DATE_TYPES = {"DateTime"}
TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"


@dataclass
class SharePointCredentials:
    access_token: str = ""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""

    @property
    def usable(self) -> bool:
        return bool(self.access_token or (self.tenant_id and self.client_id and self.client_secret))


@dataclass(frozen=True)
class RemoteRecord:
    id: int
    unique_id: Optional[str] = None
    fields: Dict[str, FieldValue] = field(default_factory=dict)


class QueryPredicate(Protocol):
    def to_odata(self) -> str: ...


class RemoteListClient(Protocol):
    """What the reconciliation engine needs from a remote list-store."""

    def connect(self, site_url: str) -> None: ...

    def current_session(self) -> Optional[str]: ...

    def query(self, list_name: str, predicate: QueryPredicate) -> List[RemoteRecord]: ...

    def create(self, list_name: str, fields: Dict[str, Any]) -> RemoteRecord: ...

    def update(self, list_name: str, record_id: int, fields: Dict[str, Any]) -> bool: ...

    def disconnect(self) -> None: ...


def to_field_value(v: Any, field_type: Optional[str] = None) -> FieldValue:
    """
    Tag a JSON value from the list. field_type is the column's TypeAsString;
    without it, text shaped like an ISO timestamp is taken for a date.
    """
    if v is None:
        return FieldValue.null()
    if isinstance(v, bool):
        return FieldValue.boolean(v)
    if isinstance(v, (int, float)):
        return FieldValue.number(v)
    if isinstance(v, str):
        if field_type in DATE_TYPES or (field_type is None and _ISO_TIMESTAMP.match(v)):
            return FieldValue.datetime(parse_datetime(v))
        return FieldValue.text(v)
    return FieldValue.text(json.dumps(v, sort_keys=True))


def record_from_item(item: Dict[str, Any], field_types: Optional[Dict[str, str]] = None) -> RemoteRecord:
    types = field_types or {}
    fields = {
        k: to_field_value(v, types.get(k))
        for k, v in item.items()
        if k not in _METADATA_KEYS and not k.startswith("odata.")
    }
    return RemoteRecord(id=int(item.get("Id") or item.get("ID")), unique_id=item.get("GUID"), fields=fields)


def odata_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class SharePointListClient:
    """
    SharePoint Online list client over the REST API.
    One attempt per call; failures surface as RemoteRequestError.
    """

    def __init__(self, creds: SharePointCredentials, timeout: int = 30):
        self.creds = creds
        self.timeout = timeout
        self.session: Optional[requests.Session] = None
        self._site_url: Optional[str] = None
        self._field_types: Dict[str, Dict[str, str]] = {}

    def _fetch_token(self, site_url: str) -> str:
        if self.creds.access_token:
            return self.creds.access_token
        host = urlparse(site_url).netloc
        try:
            resp = requests.post(
                TOKEN_URL.format(tenant=self.creds.tenant_id),
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.creds.client_id,
                    "client_secret": self.creds.client_secret,
                    "scope": f"https://{host}/.default",
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json()["access_token"]
        except (requests.RequestException, KeyError, ValueError) as e:
            raise RemoteConnectionError(f"Token request failed: {e}") from e

    def connect(self, site_url: str) -> None:
        site_url = site_url.rstrip("/")
        token = self._fetch_token(site_url)
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json;odata=nometadata",
                "Content-Type": "application/json;odata=nometadata",
            }
        )
        try:
            self._request("GET", f"{site_url}/_api/web")
        except RemoteRequestError as e:
            self.disconnect()
            raise RemoteConnectionError(f"Cannot open {site_url}: {e}") from e
        self._site_url = site_url

    def current_session(self) -> Optional[str]:
        return self._site_url

    def disconnect(self) -> None:
        if self.session is not None:
            self.session.close()
        self.session = None
        self._site_url = None
        self._field_types = {}

    def _list_url(self, list_name: str) -> str:
        if self._site_url is None:
            raise RemoteRequestError("Not connected")
        return f"{self._site_url}/_api/web/lists/getbytitle({odata_literal(list_name)})"

    def _items_url(self, list_name: str) -> str:
        return self._list_url(list_name) + "/items"

    def field_types(self, list_name: str) -> Dict[str, str]:
        """InternalName -> TypeAsString of the list's columns, fetched once per session."""
        if list_name not in self._field_types:
            resp = self._request(
                "GET", self._list_url(list_name) + "/fields", params={"$select": "InternalName,TypeAsString"}
            )
            data = resp.json()
            cols = data.get("value") if isinstance(data, dict) else data
            self._field_types[list_name] = {c["InternalName"]: c["TypeAsString"] for c in cols or []}
        return self._field_types[list_name]

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        if self.session is None:
            raise RemoteRequestError("Not connected")
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteRequestError(f"{method} {url} failed: {e}") from e
        if not resp.ok:
            raise RemoteRequestError(
                f"{method} {url} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        return resp

    def query(self, list_name: str, predicate: QueryPredicate) -> List[RemoteRecord]:
        # Example: GET .../items?$filter=Title eq 'A1' and SerialNumber eq 'SN1'
        resp = self._request("GET", self._items_url(list_name), params={"$filter": predicate.to_odata()})
        data = resp.json()
        items = data.get("value") if isinstance(data, dict) else data
        types = self.field_types(list_name)
        return [record_from_item(i, types) for i in items or []]

    def create(self, list_name: str, fields: Dict[str, Any]) -> RemoteRecord:
        types = self.field_types(list_name)
        resp = self._request("POST", self._items_url(list_name), json=fields)
        return record_from_item(resp.json(), types)

    def update(self, list_name: str, record_id: int, fields: Dict[str, Any]) -> bool:
        url = f"{self._items_url(list_name)}({int(record_id)})"
        self._request("POST", url, json=fields, headers={"X-HTTP-Method": "MERGE", "IF-MATCH": "*"})
        return True
