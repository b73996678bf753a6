"""
API router for map navigation, filtering, search and jumps.
"""
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query

from geodrill.api.dependencies import ViewerSessionDep
from geodrill.api.v1.models.responses import (
    FilterRequest,
    IndicatorRequest,
    JumpRequest,
    JumpResponse,
    NavigationStateResponse,
    SearchResponse,
    TransitionResponse,
)
from geodrill.domain.models import Level
from geodrill.services.application.viewer_session import ViewerSession
from geodrill.services.domain.navigation import NavigationError, TransitionResult


router = APIRouter(
    prefix="/navigation",
    tags=["navigation"],
)

RATE_LIMIT_RESPONSE = {429: {"description": "Rate limit exceeded"}}


def _respond(session: ViewerSession, result: TransitionResult) -> TransitionResponse:
    return TransitionResponse.from_result(
        result,
        filter_label=session.filter_state.summary_label(),
        selected_types=list(session.filter_state.selected),
    )


@router.get(
    "",
    response_model=NavigationStateResponse,
    summary="Current navigation state",
)
async def get_state(session: ViewerSessionDep) -> NavigationStateResponse:
    """
    Get the current map navigation state.

    Returns:
        Level, active selections, indicator and filter summary
    """
    return NavigationStateResponse.from_context(
        session.navigator.context,
        filter_label=session.filter_state.summary_label(),
        selected_types=list(session.filter_state.selected),
    )


@router.post(
    "/{level}/{code}/select",
    response_model=TransitionResponse,
    summary="Select an area of the map",
    description="""
    Select a region, a department or a commune of the displayed layers.

    Selecting a region or a department drills down: the child layer is
    fetched and aggregated under the current filter. If another selection
    is made before the fetch resolves, the older result is discarded and
    the response status is `discarded`.
    """,
    responses={
        404: {"description": "Area is not displayed"},
        **RATE_LIMIT_RESPONSE,
    },
)
async def select_area(
    level: Annotated[Level, Path(description="Level of the clicked layer")],
    code: Annotated[str, Path(description="Code of the clicked area")],
    session: ViewerSessionDep,
) -> TransitionResponse:
    try:
        result = await session.select(level, code)
    except NavigationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _respond(session, result)


@router.post(
    "/back",
    response_model=TransitionResponse,
    summary="Go up one level",
    responses=RATE_LIMIT_RESPONSE,
)
async def go_back(session: ViewerSessionDep) -> TransitionResponse:
    return _respond(session, await session.back())


@router.put(
    "/filter",
    response_model=TransitionResponse,
    summary="Replace the land-cover filter",
    responses=RATE_LIMIT_RESPONSE,
)
async def change_filter(request: FilterRequest, session: ViewerSessionDep) -> TransitionResponse:
    """
    Replace the selected land-cover types and re-aggregate the current level.

    Args:
        request: Labels to select
        session: Viewer session (injected dependency)

    Returns:
        TransitionResponse with the recolour effects
    """
    return _respond(session, await session.change_filter(request.labels))


@router.put(
    "/indicator",
    response_model=TransitionResponse,
    summary="Switch the displayed indicator",
)
async def change_indicator(request: IndicatorRequest, session: ViewerSessionDep) -> TransitionResponse:
    return _respond(session, session.change_indicator(request.indicator))


@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Search regions, departments and communes by name",
    responses=RATE_LIMIT_RESPONSE,
)
async def search(
    q: Annotated[str, Query(description="Free text, at least 2 characters")],
    session: ViewerSessionDep,
) -> SearchResponse:
    return SearchResponse(query=q, results=await session.search(q))


@router.post(
    "/jump",
    response_model=JumpResponse,
    summary="Navigate to a search result",
    description="""
    Replays the drill-down needed to reach a region, a department or a
    commune, discovering the parent region when needed. A failing step
    stops the jump at the last level reached.
    """,
    responses=RATE_LIMIT_RESPONSE,
)
async def jump(request: JumpRequest, session: ViewerSessionDep) -> JumpResponse:
    outcome = await session.jump(request.type, request.code)
    return JumpResponse.from_outcome(outcome)
