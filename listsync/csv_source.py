from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import IO, Dict, List, Union

import pandas as pd

from listsync.errors import CsvSourceError


@dataclass
class CsvSource:
    columns: List[str]
    rows: List[Dict[str, str]]


def read_csv_rows(source: Union[str, Path, IO[str]]) -> CsvSource:
    """Read a CSV export as list of dicts using the header row; every cell stays text."""
    try:
        df = pd.read_csv(source, dtype=str, keep_default_na=False, na_filter=False)
    except (OSError, UnicodeDecodeError, pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise CsvSourceError(f"Cannot read CSV {source}: {e}") from e

    headers = [str(h).strip() for h in df.columns]
    df.columns = headers
    return CsvSource(columns=headers, rows=df.to_dict(orient="records"))
