"""Bulk import decoding.

Decodes an uploaded CSV or XLSX buffer into a list of raw row mappings.
The format is chosen from the declared MIME type, never sniffed from
the content.
"""

import io
from dataclasses import dataclass
from typing import Any

import pandas as pd

from app.catalog.exceptions import EmptyInputError, ParseError, UnsupportedFormatError

CSV_MIMETYPES = frozenset(
    {
        "text/csv",
        "application/csv",
        # browsers on Windows label .csv uploads this way
        "application/vnd.ms-excel",
    }
)
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(frozen=True)
class FileUpload:
    """The two fields of an upload the catalog consumes."""

    mimetype: str
    buffer: bytes


def parse_upload(buffer: bytes, mimetype: str | None) -> list[dict[str, Any]]:
    """Decode an upload into row records.

    Args:
        buffer: Raw file bytes.
        mimetype: Declared MIME type (parameters such as charset ignored).

    Returns:
        One dict per data row, keyed by header. Blank cells are None.

    Raises:
        UnsupportedFormatError: If the MIME type is not CSV or XLSX.
        EmptyInputError: If the buffer holds no bytes at all.
        ParseError: If the decoder rejects the content.
    """
    kind = (mimetype or "").split(";", 1)[0].strip().lower()

    if kind in CSV_MIMETYPES:
        reader = _read_csv
    elif kind == XLSX_MIMETYPE:
        reader = _read_xlsx
    else:
        raise UnsupportedFormatError(mimetype)

    if not buffer:
        raise EmptyInputError("File is empty")

    try:
        frame = reader(buffer)
    except pd.errors.EmptyDataError as exc:
        raise EmptyInputError("File is empty") from exc
    except Exception as exc:
        raise ParseError("Failed to parse file", details={"error": str(exc)}) from exc

    return _to_records(frame)


def _read_csv(buffer: bytes) -> pd.DataFrame:
    frame = pd.read_csv(
        io.BytesIO(buffer),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        skipinitialspace=True,
        encoding="utf-8-sig",
    )
    frame.columns = [str(c).strip() for c in frame.columns]
    for column in frame.columns:
        frame[column] = frame[column].str.strip()
    return frame


def _read_xlsx(buffer: bytes) -> pd.DataFrame:
    frame = pd.read_excel(io.BytesIO(buffer), sheet_name=0, engine="openpyxl")
    frame.columns = [str(c).strip() for c in frame.columns]
    return frame.dropna(how="all")


def _to_records(frame: pd.DataFrame) -> list[dict[str, Any]]:
    frame = frame.astype(object).where(frame.notna(), None)
    records = []
    for row in frame.to_dict(orient="records"):
        records.append(
            {
                key: None if isinstance(value, str) and value == "" else value
                for key, value in row.items()
            }
        )
    return records
