import io
from typing import Any, Dict, List

import pandas as pd

from .errors import InvalidInputError
from .utils.logging import get_logger

log = get_logger(__name__)

EMPTY_CSV_MESSAGE = "CSV file is empty or invalid"


def parse_csv(content: bytes) -> List[Dict[str, Any]]:
    """Parse an uploaded scan export into one dict per row.

    The first line is the header. Numeric columns come back as int/float,
    blank cells as None, and blank lines are skipped.
    """
    try:
        df = pd.read_csv(
            io.BytesIO(content),
            skip_blank_lines=True,
            on_bad_lines="warn",
            encoding="utf-8-sig",
            encoding_errors="replace",
        )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, ValueError) as e:
        log.error(f"CSV parsing errors: {e}")
        raise InvalidInputError(EMPTY_CSV_MESSAGE)

    df = df.dropna(how="all")
    df.columns = [str(c).strip() for c in df.columns]
    rows = df.astype(object).where(df.notna(), None).to_dict(orient="records")
    return [{k: _plain(v) for k, v in row.items()} for row in rows]


def _plain(value):
    # numpy scalars -> builtins so rows serialize with json
    if hasattr(value, "item"):
        return value.item()
    return value
