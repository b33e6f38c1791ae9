"""
Records passed between the pipeline stages and returned over HTTP.

Rows, boxes and graphs are frozen; later stages derive enriched copies
with model_copy(update=...) instead of mutating.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_serializer


GEOMETRY_FIELDS = ("x", "y", "width", "height", "top", "right", "bottom", "left")


class Row(BaseModel):
    """One unit of input work drawn from the row source."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    url: str
    source: str
    user_agent: str | None = None
    click_frequency: float | None = None
    weight: float | None = None


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    selector: str
    role: Literal["source", "target"]
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    top: float = 0
    right: float = 0
    bottom: float = 0
    left: float = 0
    z_index: int | None = Field(default=None, alias="zIndex")
    position: str = "static"
    url: str = ""
    click_frequency: float | None = None
    snapshot: str | None = None
    viewport_snapshot: str | None = None

    @model_serializer(mode="wrap")
    def _drop_missing_snapshots(self, handler):
        # A box whose capture failed (or was never attempted) carries no snapshot keys at all
        data = handler(self)
        for key in ("snapshot", "viewport_snapshot"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


class Intersection(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str
    target: str
    source_box: BoundingBox = Field(alias="sourceBox")
    target_box: BoundingBox = Field(alias="targetBox")


class Graph(BaseModel):
    """Boxes extracted from one row's page."""

    model_config = ConfigDict(frozen=True)

    url: str
    sources: list[BoundingBox] = []
    targets: list[BoundingBox] = []
    intersections: list[Intersection] | None = None

    @model_serializer(mode="wrap")
    def _drop_unrequested_intersections(self, handler):
        data = handler(self)
        if data.get("intersections") is None:
            data.pop("intersections", None)
        return data

    @property
    def is_empty(self) -> bool:
        return not self.sources and not self.targets


class PaginationState(BaseModel):
    cursor: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)


class BatchResult(BaseModel):
    results: list[Graph]
    cursor: int
    total: int

    @property
    def pagination(self) -> PaginationState:
        return PaginationState(cursor=self.cursor, total=self.total)


class SessionSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    rows: list[Row]


# ---------------------------------------------------------------------------
# HTTP models
# ---------------------------------------------------------------------------

class NextRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(default="", alias="sessionId")
    cursor: int = 0
    intersections: bool = False


class BatchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    result: list[Graph]
    session_id: str = Field(alias="sessionId")
    total: int
    cursor: int
