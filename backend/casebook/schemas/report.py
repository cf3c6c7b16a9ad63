"""Report builder request/response schemas.

JSON uses camelCase (dataSource, groupBy, orderBy); Python code uses the
snake_case attribute names. Shape rules that depend on the operator
(between pairs, non-empty IN lists) are enforced by the QueryBuilder so they
surface as InvalidFilterError rather than a generic 422.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FilterOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    BETWEEN = "between"
    IN = "in"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class Aggregate(str, Enum):
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


class TimeBucket(str, Enum):
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


class SelectedField(CamelModel):
    name: str
    table: Optional[str] = None
    alias: Optional[str] = None
    aggregate: Optional[Aggregate] = None
    bucket: Optional[TimeBucket] = None


class ReportFilter(CamelModel):
    field: str
    operator: str
    value: Any = None
    table: Optional[str] = None
    parameter: Optional[str] = None  # runtime parameter overriding `value`


class OrderClause(CamelModel):
    field: str
    direction: str = SortDirection.ASC.value


class QueryDefinition(CamelModel):
    data_source: str
    fields: List[SelectedField] = Field(default_factory=list)
    filters: List[ReportFilter] = Field(default_factory=list)
    group_by: List[str] = Field(default_factory=list)
    order_by: List[OrderClause] = Field(default_factory=list)
    limit: Optional[int] = None


class ReportColumn(BaseModel):
    name: str
    type: str
    label: str


class ReportResult(CamelModel):
    rows: List[Dict[str, Any]]
    columns: List[ReportColumn]
    total_rows: int


class ReportExecutionRequest(CamelModel):
    query_definition: QueryDefinition
    parameters: Dict[str, Any] = Field(default_factory=dict)
    timeout_seconds: Optional[PositiveFloat] = None


class TemplateExecutionRequest(CamelModel):
    parameters: Dict[str, Any] = Field(default_factory=dict)
    timeout_seconds: Optional[PositiveFloat] = None


class ReportExportRequest(ReportExecutionRequest):
    format: str = "csv"


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

class TemplateCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    template_type: str = "custom"
    query_definition: QueryDefinition
    parameters: Dict[str, Any] = Field(default_factory=dict)
    is_public: bool = False


class TemplateUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    template_type: Optional[str] = None
    query_definition: Optional[QueryDefinition] = None
    parameters: Optional[Dict[str, Any]] = None
    is_public: Optional[bool] = None


class TemplateResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    template_type: str
    query_definition: QueryDefinition
    parameters: Dict[str, Any] = Field(default_factory=dict)
    created_by: str
    is_public: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PrebuiltTemplate(CamelModel):
    id: str
    name: str
    description: str
    template_type: str
    query_definition: QueryDefinition


class TemplateUsage(CamelModel):
    template_type: str
    template_count: int
    public_templates: int
    private_templates: int


class TemplateActivity(CamelModel):
    id: str
    name: str
    template_type: str
    created_at: Optional[datetime] = None
    created_by_name: Optional[str] = None


class ReportBuilderAnalytics(CamelModel):
    template_usage: List[TemplateUsage]
    recent_activity: List[TemplateActivity]
