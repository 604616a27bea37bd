import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
import structlog
from structlog.testing import LogCapture

from listsync.config import RulesConfig, SharePointConfig, SyncConfig
from listsync.errors import RemoteConnectionError, RemoteRequestError
from listsync.mapper import FieldMapping
from listsync.sharepoint_client import record_from_item
from listsync.values import parse_datetime, to_iso

SITE_URL = "https://contoso.sharepoint.com/sites/inventory"
LIST_NAME = "Assets"


class FakeListClient:
    """In-memory list that stores values the way SharePoint returns them."""

    def __init__(self, schema=None, items=None):
        self.schema = schema or {}
        self.items = {}
        self.calls = []
        self.session = None
        self.fail_connect = False
        self.fail_create = False
        self.fail_update_ids = set()
        self.disconnects = 0
        self._next_id = 1
        for item in items or []:
            self.add(**item)

    def add(self, **fields):
        item_id = self._next_id
        self._next_id += 1
        stored = {k: self._coerce(k, v) for k, v in fields.items()}
        stored.update({"Id": item_id, "ID": item_id, "GUID": f"guid-{item_id}"})
        self.items[item_id] = stored
        return item_id

    def _coerce(self, name, value):
        kind = self.schema.get(name, "text")
        if value is None or isinstance(value, bool) and kind == "boolean":
            return value
        if kind == "number":
            try:
                return float(value)
            except ValueError:
                raise RemoteRequestError(f"{name}: {value!r} is not a number", status_code=400)
        if kind == "datetime":
            return to_iso(parse_datetime(str(value))) + "Z"
        if kind == "boolean":
            return str(value).strip().lower() in ("true", "yes", "1")
        return str(value)

    def connect(self, site_url):
        self.calls.append(("connect", site_url))
        if self.fail_connect:
            raise RemoteConnectionError("authentication failed")
        self.session = site_url

    def current_session(self):
        return self.session

    def query(self, list_name, predicate):
        self.calls.append(("query", list_name, predicate.to_odata()))
        return [
            record_from_item(item)
            for item in self.items.values()
            if all(str(item.get(name)) == value for name, value in predicate.clauses)
        ]

    def create(self, list_name, fields):
        self.calls.append(("create", list_name, dict(fields)))
        if self.fail_create:
            raise RemoteRequestError("list is read-only", status_code=403)
        return record_from_item(self.items[self.add(**fields)])

    def update(self, list_name, record_id, fields):
        self.calls.append(("update", list_name, record_id, dict(fields)))
        if record_id in self.fail_update_ids:
            raise RemoteRequestError("item locked", status_code=409)
        self.items[record_id].update({k: self._coerce(k, v) for k, v in fields.items()})
        return True

    def disconnect(self):
        self.disconnects += 1
        self.session = None

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def log_capture():
    return LogCapture()


@pytest.fixture
def log(log_capture):
    return structlog.wrap_logger(structlog.ReturnLogger(), processors=[log_capture])


@pytest.fixture
def client():
    return FakeListClient()


def make_config(mappings=None, rules=None, **ident):
    mappings = mappings or {"Title": "AssetTag", "SerialNumber": "SerialNumber", "Status": "Status"}
    rules = rules or RulesConfig()
    mapping = FieldMapping(
        remote_to_csv=mappings,
        primary_field=ident.get("primary", "Title"),
        secondary_field=ident.get("secondary", "SerialNumber"),
        due_date_field=ident.get("due_date_field"),
    )
    return SyncConfig(sharepoint=SharePointConfig(site_url=SITE_URL, list_name=LIST_NAME), mapping=mapping, rules=rules)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def config_factory():
    return make_config
