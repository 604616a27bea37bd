from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from listsync.mapper import FieldMapping
from listsync.sharepoint_client import RemoteListClient, RemoteRecord, odata_literal


@dataclass(frozen=True)
class Predicate:
    """Exact text equality on every (field, value) clause, joined with AND."""

    clauses: Tuple[Tuple[str, str], ...]

    def to_odata(self) -> str:
        return " and ".join(f"{name} eq {odata_literal(value)}" for name, value in self.clauses)


def identity_predicate(mapping: FieldMapping, primary: str, secondary: str) -> Predicate:
    return Predicate(((mapping.primary_field, primary), (mapping.secondary_field, secondary)))


def find_matches(
    client: RemoteListClient,
    list_name: str,
    mapping: FieldMapping,
    primary: str,
    secondary: str,
) -> List[RemoteRecord]:
    """Single unpaged query; zero, one or (with duplicate data) several records."""
    return list(client.query(list_name, identity_predicate(mapping, primary, secondary)))
