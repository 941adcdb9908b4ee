"""Artifact directory access: list, decode, download and delete crawl outputs."""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pandas as pd

from harvest_api.errors import FileNotFound, InvalidFilename, IOFailure, ValidationError
from harvest_api.storage.records import DataFile, TweetRecord

logger = logging.getLogger("harvest.storage")

CSV_EXTENSION = ".csv"
XLSX_EXTENSION = ".xlsx"
RECOGNIZED_EXTENSIONS = (CSV_EXTENSION, XLSX_EXTENSION)


def validate_filename(filename: str) -> str:
    """Reject anything that is not a bare file name inside the artifact directory."""
    if (
        not filename
        or filename in (".", "..")
        or "/" in filename
        or "\\" in filename
        or "\x00" in filename
        or ".." in Path(filename).parts
        or os.path.basename(filename) != filename
    ):
        raise InvalidFilename(f"Invalid filename: {filename!r}")
    return filename


class ResultStore:
    """Reads the directory the crawler writes its CSV / XLSX artifacts into.

    Holds no state beyond the directory path; every call goes to the file
    system.
    """

    def __init__(self, base_dir: str):
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def list_files(self) -> List[DataFile]:
        """Recognised artifacts, most recently modified first."""
        if not self._base_dir.is_dir():
            return []
        files = []
        for entry in self._base_dir.iterdir():
            if not entry.is_file() or entry.suffix.lower() not in RECOGNIZED_EXTENSIONS:
                continue
            stat = entry.stat()
            born = getattr(stat, "st_birthtime", stat.st_ctime)
            files.append(
                DataFile(
                    filename=entry.name,
                    size=stat.st_size,
                    created_at=datetime.fromtimestamp(born, tz=timezone.utc),
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        files.sort(key=lambda f: f.modified_at, reverse=True)
        return files

    def get_path(self, filename: str) -> Path:
        """Resolve an existing artifact, raising FileNotFound if it is absent."""
        path = self._base_dir / validate_filename(filename)
        if not path.is_file():
            raise FileNotFound(filename)
        return path

    def read(self, filename: str) -> List[TweetRecord]:
        """Decode an artifact into rows (header row gives the column names)."""
        path = self.get_path(filename)
        suffix = path.suffix.lower()
        if suffix not in RECOGNIZED_EXTENSIONS:
            raise ValidationError("Unsupported file format")
        try:
            if suffix == CSV_EXTENSION:
                rows = _read_csv(path)
            else:
                rows = _read_xlsx(path)
        except Exception as exc:
            logger.error(
                "Failed to decode %s: %s", filename, exc,
                extra={"event": "artifact.decode_failed", "artifact": filename},
            )
            raise IOFailure(str(exc)) from exc
        return [TweetRecord.from_row(row) for row in rows]

    def download(self, filename: str) -> Tuple[Path, str]:
        """Path to stream and the name to present it under."""
        return self.get_path(filename), filename

    def remove(self, filename: str) -> bool:
        path = self.get_path(filename)
        try:
            path.unlink()
        except FileNotFoundError:
            raise FileNotFound(filename)
        except OSError as exc:
            raise IOFailure(str(exc)) from exc
        logger.info(
            "Deleted artifact %s", filename,
            extra={"event": "artifact.deleted", "artifact": filename},
        )
        return True


def _read_csv(path: Path) -> List[Dict[str, Any]]:
    try:
        df = pd.read_csv(
            path,
            dtype=str,
            index_col=False,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8",
        )
    except pd.errors.EmptyDataError:
        return []
    return df.to_dict(orient="records")


def _read_xlsx(path: Path) -> List[Dict[str, Any]]:
    df = pd.read_excel(path, sheet_name=0, dtype=object, engine="openpyxl")
    rows = []
    for raw in df.to_dict(orient="records"):
        row = {}
        for key, value in raw.items():
            # Blank cells are left out of the row, as spreadsheet readers do
            if value is None or (isinstance(value, float) and pd.isna(value)):
                continue
            if isinstance(value, pd.Timestamp):
                value = value.isoformat()
            row[str(key)] = value
        if row:
            rows.append(row)
    return rows
