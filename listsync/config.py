from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import dotenv_values

from listsync.errors import ConfigurationError
from listsync.mapper import FieldMapping
from listsync.sharepoint_client import SharePointCredentials

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

DEFAULT_CONFIG: Dict[str, Any] = {
    "SharePoint": {
        "siteURL": "https://contoso.sharepoint.com/sites/inventory",
        "listName": "Assets",
    },
    "FieldMappings": {
        "Title": "AssetTag",
        "SerialNumber": "SerialNumber",
        "Status": "Status",
        "Model": "Model",
        "PurchaseDate": "PurchaseDate",
        "CurrentOwnerDocId": None,
        "OMNI": None,
    },
    "IdentityFields": {"primary": "Title", "secondary": "SerialNumber"},
    "Rules": {
        "ownershipChangeField": "CurrentOwnerDocId",
        "staleFlagField": "OMNI",
        "dueDateField": None,
        "createMissing": True,
    },
    "Logging": {"logLevel": "INFO", "logFile": "listsync.log"},
}


@dataclass
class SharePointConfig:
    site_url: str
    list_name: str


@dataclass
class RulesConfig:
    ownership_change_field: Optional[str] = None
    stale_flag_field: Optional[str] = None
    create_missing: bool = True


@dataclass
class LoggingConfig:
    log_level: str = "INFO"
    log_file: Optional[str] = "listsync.log"


@dataclass
class SyncConfig:
    sharepoint: SharePointConfig
    mapping: FieldMapping
    rules: RulesConfig = field(default_factory=RulesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _section(data: Dict[str, Any], name: str, required: bool = True) -> Dict[str, Any]:
    sec = data.get(name)
    if sec is None and not required:
        return {}
    if not isinstance(sec, dict):
        raise ConfigurationError(f"Config section {name!r} is missing or not an object")
    return sec


def parse_config(data: Dict[str, Any]) -> SyncConfig:
    if not isinstance(data, dict):
        raise ConfigurationError("Config root must be an object")

    sp = _section(data, "SharePoint")
    site_url = str(sp.get("siteURL") or "").strip()
    list_name = str(sp.get("listName") or "").strip()
    if not site_url or not list_name:
        raise ConfigurationError("SharePoint.siteURL and SharePoint.listName are required")

    mappings = _section(data, "FieldMappings")
    for k, v in mappings.items():
        if v is not None and not isinstance(v, str):
            raise ConfigurationError(f"FieldMappings.{k} must be a column name or null")

    ident = _section(data, "IdentityFields", required=False)
    rules = _section(data, "Rules", required=False)
    mapping = FieldMapping(
        remote_to_csv=dict(mappings),
        primary_field=ident.get("primary", "Title"),
        secondary_field=ident.get("secondary", "SerialNumber"),
        due_date_field=rules.get("dueDateField"),
    )

    ownership = rules.get("ownershipChangeField")
    stale = rules.get("staleFlagField")
    if bool(ownership) != bool(stale):
        raise ConfigurationError("Rules.ownershipChangeField and Rules.staleFlagField must be set together")

    log_cfg = _section(data, "Logging", required=False)
    level = str(log_cfg.get("logLevel", "INFO")).upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"Logging.logLevel must be one of {', '.join(LOG_LEVELS)}, got {level!r}")

    return SyncConfig(
        sharepoint=SharePointConfig(site_url=site_url, list_name=list_name),
        mapping=mapping,
        rules=RulesConfig(
            ownership_change_field=ownership or None,
            stale_flag_field=stale or None,
            create_missing=bool(rules.get("createMissing", True)),
        ),
        logging=LoggingConfig(log_level=level, log_file=log_cfg.get("logFile", "listsync.log")),
    )


def write_default_config(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(DEFAULT_CONFIG, indent=2) + "\n", encoding="utf-8")


def load_config(path: str | Path) -> SyncConfig:
    """Load the JSON sync config; a missing file is created from the template first."""
    path = Path(path)
    if not path.exists():
        write_default_config(path)
        raise ConfigurationError(f"Created {path} from template. Fill it in and run again.")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{path} is not valid JSON: {e}") from e
    return parse_config(data)


def load_credentials(env_path: str | Path = ".env") -> SharePointCredentials:
    env = dotenv_values(env_path)
    return SharePointCredentials(
        access_token=env.get("SHAREPOINT_ACCESS_TOKEN") or "",
        tenant_id=env.get("SHAREPOINT_TENANT_ID") or "",
        client_id=env.get("SHAREPOINT_CLIENT_ID") or "",
        client_secret=env.get("SHAREPOINT_CLIENT_SECRET") or "",
    )
