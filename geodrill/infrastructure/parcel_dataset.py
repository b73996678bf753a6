"""
Infrastructure layer: columnar dataset of land parcels.

One row per parcel with its region, department and commune codes, its
land-cover group, its surface and its mean altitude and slope.
"""
import io
import logging
from pathlib import Path
from typing import Iterable, Union

import pandas as pd


logger = logging.getLogger(__name__)

REGION_COLUMN = "reg_parc"
DEPARTMENT_COLUMN = "dep_parc"
COMMUNE_COLUMN = "com_parc"
LAND_COVER_COLUMN = "libelle_group"
SURFACE_COLUMN = "surf_parc"
ALTITUDE_COLUMN = "alt_mean"
SLOPE_COLUMN = "pente_mean"
PARCEL_ID_COLUMN = "id_parcel"

REQUIRED_COLUMNS = [
    REGION_COLUMN,
    DEPARTMENT_COLUMN,
    COMMUNE_COLUMN,
    LAND_COVER_COLUMN,
    SURFACE_COLUMN,
    ALTITUDE_COLUMN,
    SLOPE_COLUMN,
]


class ParcelDataset:
    """In-memory parcel table with normalized column types."""

    def __init__(self, frame: pd.DataFrame):
        missing = [c for c in REQUIRED_COLUMNS if c not in frame.columns]
        if missing:
            raise KeyError(f"Parcel dataset is missing columns: {missing}")
        self.frame = _normalize(frame)
        logger.info(f"Parcel dataset ready: {len(self.frame)} rows")

    def __len__(self) -> int:
        return len(self.frame)

    @classmethod
    def from_parquet(cls, path: Union[str, Path]) -> "ParcelDataset":
        """Load the dataset from a single parquet file."""
        logger.info(f"Reading parcel dataset from {path}")
        return cls(pd.read_parquet(path))

    @classmethod
    def from_chunks(cls, paths: Iterable[Union[str, Path]]) -> "ParcelDataset":
        """
        Concatenate byte chunks of a split parquet file and load it.

        The parquet footer only exists at the end of the last chunk, so the
        chunks are joined in the given order before reading.
        """
        buffer = io.BytesIO()
        count = 0
        for path in paths:
            buffer.write(Path(path).read_bytes())
            count += 1
        if count == 0:
            raise ValueError("No parquet chunk given")
        logger.info(f"Merged {count} parquet chunks ({buffer.tell()} bytes)")
        buffer.seek(0)
        return cls(pd.read_parquet(buffer))


def _normalize(frame: pd.DataFrame) -> pd.DataFrame:
    """Coerce codes to strings and measures to floats."""
    df = frame.copy()
    for col in (REGION_COLUMN, DEPARTMENT_COLUMN):
        df[col] = df[col].astype(str).str.strip()
    df[COMMUNE_COLUMN] = df[COMMUNE_COLUMN].astype(str).str.strip().str.zfill(5)
    for col in (SURFACE_COLUMN, ALTITUDE_COLUMN, SLOPE_COLUMN):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    if PARCEL_ID_COLUMN not in df.columns:
        df[PARCEL_ID_COLUMN] = df.index.astype(str)
    else:
        df[PARCEL_ID_COLUMN] = df[PARCEL_ID_COLUMN].astype(str)
    return df.dropna(subset=[SURFACE_COLUMN, ALTITUDE_COLUMN, SLOPE_COLUMN])
