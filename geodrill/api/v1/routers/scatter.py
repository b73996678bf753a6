"""
API router for the altitude/slope scatter view.
"""
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path

from geodrill.api.dependencies import ViewerSessionDep
from geodrill.api.v1.models.responses import ScatterResponse
from geodrill.services.domain.navigation import NavigationError


router = APIRouter(
    prefix="/scatter",
    tags=["scatter"],
)


@router.post(
    "/{code}/drill",
    response_model=ScatterResponse,
    summary="Drill into a scatter point",
    description="""
    Drill from a region to its departments, a department to its communes,
    or a commune to its parcels. Parcels have no children: drilling into
    one is ignored.
    """,
    responses={404: {"description": "Point is not displayed"}},
)
async def drill(
    code: Annotated[str, Path(description="Code of the clicked point")],
    session: ViewerSessionDep,
) -> ScatterResponse:
    try:
        result = await session.scatter_drill(code)
    except NavigationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ScatterResponse.from_result(result, depth=session.scatter.depth)


@router.post(
    "/back",
    response_model=ScatterResponse,
    summary="Restore the scatter shown before the last drill",
)
async def back(session: ViewerSessionDep) -> ScatterResponse:
    result = session.scatter_back()
    return ScatterResponse.from_result(result, depth=session.scatter.depth)
