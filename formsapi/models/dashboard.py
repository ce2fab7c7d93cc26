from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel

Aggregation = Literal["count", "sum", "avg", "min", "max"]


class Widget(BaseModel):
    id: str
    type: Literal["bar", "pie", "table"] = "bar"
    title: Optional[str] = None
    groupBy: Optional[str] = None
    aggregation: Aggregation = "count"


class DashboardConfig(BaseModel):
    widgets: List[Widget] = []


class DashboardIn(BaseModel):
    title: str
    description: Optional[str] = None
    form_id: Optional[int] = None
    config: DashboardConfig = DashboardConfig()
    active: bool = True


class DashboardUpdateIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    form_id: Optional[int] = None
    config: Optional[DashboardConfig] = None
    active: Optional[bool] = None


class Dashboard(DashboardIn):
    id: int
    created_by: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AggregatePoint(BaseModel):
    name: str
    value: float


class DashboardData(BaseModel):
    field_id: str
    aggregation: Aggregation
    data: List[AggregatePoint]
    total: int = 0
