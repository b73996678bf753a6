"""
API request and response models using Pydantic.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from geodrill.domain.effects import Effect
from geodrill.domain.models import Indicator, Level, SearchCandidate
from geodrill.services.application.jump_resolver import JumpOutcome
from geodrill.services.domain.navigation import NavigationContext, TransitionResult
from geodrill.services.domain.scatter import ScatterResult


class FilterRequest(BaseModel):
    """Land-cover labels to select."""
    labels: List[str] = Field(
        description="Selected land-cover labels; an empty list selects nothing",
        examples=[["Prairie permanente"]],
    )


class IndicatorRequest(BaseModel):
    indicator: Indicator


class JumpRequest(BaseModel):
    """Destination of a jump, usually a search candidate."""
    type: Level
    code: str = Field(examples=["69123"])


class NavigationStateResponse(BaseModel):
    """Current map navigation state."""
    level: Level
    active_region: Optional[str] = None
    active_department: Optional[str] = None
    active_commune: Optional[str] = None
    indicator: Indicator
    filter_label: str
    selected_types: List[str]

    @classmethod
    def from_context(
        cls,
        context: NavigationContext,
        filter_label: str,
        selected_types: List[str],
    ) -> "NavigationStateResponse":
        return cls(
            level=context.level,
            active_region=context.active_region.code if context.active_region else None,
            active_department=context.active_department.code if context.active_department else None,
            active_commune=context.active_commune.code if context.active_commune else None,
            indicator=context.indicator,
            filter_label=filter_label,
            selected_types=sorted(selected_types),
        )


class TransitionResponse(BaseModel):
    """Outcome of a navigation command and the effects to render."""
    status: str = Field(
        description="committed, discarded (superseded), aborted (fetch failed) or ignored"
    )
    state: NavigationStateResponse
    effects: List[Effect]

    @classmethod
    def from_result(
        cls,
        result: TransitionResult,
        filter_label: str,
        selected_types: List[str],
    ) -> "TransitionResponse":
        return cls(
            status=result.status.value,
            state=NavigationStateResponse.from_context(result.context, filter_label, selected_types),
            effects=result.effects,
        )


class ScatterResponse(BaseModel):
    status: str
    level: Level
    depth: int = Field(description="Number of frames on the back stack")
    effects: List[Effect]

    @classmethod
    def from_result(cls, result: ScatterResult, depth: int) -> "ScatterResponse":
        return cls(
            status=result.status.value,
            level=result.frame.level,
            depth=depth,
            effects=result.effects,
        )


class SearchResponse(BaseModel):
    query: str
    results: List[SearchCandidate]


class JumpResponse(BaseModel):
    target: Level
    code: str
    reached: Optional[Level] = None
    completed: bool
    effects: List[Effect]

    @classmethod
    def from_outcome(cls, outcome: JumpOutcome) -> "JumpResponse":
        return cls(
            target=outcome.target,
            code=outcome.code,
            reached=outcome.reached,
            completed=outcome.completed,
            effects=outcome.effects,
        )
