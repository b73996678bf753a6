"""
Render effects emitted by the navigation engine.

The engine never paints anything itself: every transition returns a list of
effects, in order, for the presentation layer to apply.
"""
from typing import List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from geodrill.domain.models import Area, CategoryBreakdown, Level


class RenderLayer(BaseModel):
    """Draw the features of one level, replacing what the layer held."""
    kind: Literal["render_layer"] = "render_layer"
    level: Level
    features: List[Area]


class ClearLayer(BaseModel):
    """Remove every feature of a level."""
    kind: Literal["clear_layer"] = "clear_layer"
    level: Level


class SetLayerOpacity(BaseModel):
    kind: Literal["set_layer_opacity"] = "set_layer_opacity"
    level: Level
    opacity: float


class Recolor(BaseModel):
    """Repaint features; `domain` is None when no feature has data."""
    kind: Literal["recolor"] = "recolor"
    level: Level
    features: List[Area]
    domain: Optional[Tuple[float, float]] = None


class UpdateLegend(BaseModel):
    kind: Literal["update_legend"] = "update_legend"
    min: float
    max: float
    ticks: List[float]
    unit: str


class UpdatePanel(BaseModel):
    """Side panel content for the selected area."""
    kind: Literal["update_panel"] = "update_panel"
    code: str
    name: str
    level_label: str
    indicator_label: str
    value: Optional[float] = None
    unit: str
    displayed_max: Optional[float] = Field(
        default=None,
        description="Largest value currently displayed, for the proportion bar"
    )
    ratio: float = 0.0
    top_categories: List[CategoryBreakdown] = Field(default_factory=list)


class ZoomTo(BaseModel):
    kind: Literal["zoom_to"] = "zoom_to"
    code: str
    bounds: Optional[Tuple[float, float, float, float]] = None
    scale: float = 1.0
    max_zoom: float


class ResetZoom(BaseModel):
    kind: Literal["reset_zoom"] = "reset_zoom"


class Highlight(BaseModel):
    kind: Literal["highlight"] = "highlight"
    level: Level
    code: str


class SetBackButton(BaseModel):
    """Show the back button with a label, or hide it when label is None."""
    kind: Literal["set_back_button"] = "set_back_button"
    label: Optional[str] = None


class UpdateFilterLabel(BaseModel):
    kind: Literal["update_filter_label"] = "update_filter_label"
    label: str


class ScatterPoint(BaseModel):
    code: str
    name: str
    altitude: float
    slope: float
    surface: float


class RenderScatter(BaseModel):
    kind: Literal["render_scatter"] = "render_scatter"
    level: Level
    points: List[ScatterPoint]
    can_go_back: bool = False


Effect = Union[
    RenderLayer,
    ClearLayer,
    SetLayerOpacity,
    Recolor,
    UpdateLegend,
    UpdatePanel,
    ZoomTo,
    ResetZoom,
    Highlight,
    SetBackButton,
    UpdateFilterLabel,
    RenderScatter,
]
