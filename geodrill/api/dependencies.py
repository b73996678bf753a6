"""
Dependency injection for FastAPI.
"""
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status

from geodrill.config import settings
from geodrill.infrastructure.geo_api_client import get_geo_client
from geodrill.infrastructure.parcel_dataset import ParcelDataset
from geodrill.services.application.viewer_session import ViewerSession
from geodrill.services.domain.aggregation import AggregationProvider


# Single-user viewer: one session per process
_viewer_session: Optional[ViewerSession] = None


def load_parcel_dataset() -> ParcelDataset:
    """
    Load the parcel dataset from the configured location.

    Returns:
        ParcelDataset instance
    """
    if settings.dataset_chunks:
        return ParcelDataset.from_chunks(settings.dataset_chunks)
    return ParcelDataset.from_parquet(settings.dataset_path)


def build_viewer_session() -> ViewerSession:
    """
    Create the process-wide viewer session.

    Returns:
        ViewerSession instance, not started yet
    """
    global _viewer_session
    provider = AggregationProvider(load_parcel_dataset())
    _viewer_session = ViewerSession(client=get_geo_client(), provider=provider)
    return _viewer_session


def get_viewer_session() -> ViewerSession:
    """
    Dependency factory for the started viewer session.

    Returns:
        ViewerSession instance

    Raises:
        HTTPException: If the session failed to start
    """
    if _viewer_session is None or not _viewer_session.started:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Viewer session is not ready",
        )
    return _viewer_session


# Type aliases for cleaner route signatures
ViewerSessionDep = Annotated[ViewerSession, Depends(get_viewer_session)]
