"""Response schemas for the embeddable transparency widget."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    # Widget consumers are browser scripts expecting camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TransparencyMetrics(_CamelModel):
    """Point-in-time DAO, treasury and member counters."""

    total_proposals: int = 0
    active_proposals: int = 0
    funded_proposals: int = 0
    total_votes: int = 0
    unique_voters: int = 0
    participation_rate: float = 0.0

    treasury_balance: float = 0.0
    total_deposits: float = 0.0
    total_withdrawals: float = 0.0
    net_change: float = 0.0

    total_members: int = 0
    active_members: int = 0
    new_members_this_week: int = 0

    proposals_this_week: int = 0
    votes_this_week: int = 0
    treasury_activity_this_week: int = 0


class ChartDataPoint(_CamelModel):
    label: str
    value: float
    date: str | None = None


class RecentActivity(_CamelModel):
    id: str
    type: Literal["proposal", "vote", "transaction", "member"]
    title: str
    description: str
    timestamp: str
    metadata: dict[str, Any] | None = None


class ChartData(_CamelModel):
    treasury: list[ChartDataPoint] = Field(default_factory=list)
    proposals: list[ChartDataPoint] = Field(default_factory=list)
    voting: list[ChartDataPoint] = Field(default_factory=list)


class EmbedWidgetData(_CamelModel):
    """Payload served to embedded transparency widgets."""

    metrics: TransparencyMetrics
    recent_activity: list[RecentActivity] = Field(default_factory=list)
    chart_data: ChartData = Field(default_factory=ChartData)
    timestamp: str
