"""Canned report definitions shown in the report builder gallery. Read-only."""
from typing import Tuple

from casebook.schemas.report import PrebuiltTemplate, QueryDefinition

PREBUILT_TEMPLATES: Tuple[PrebuiltTemplate, ...] = (
    PrebuiltTemplate(
        id="revenue_by_month",
        name="Revenue by Month",
        description="Monthly revenue analysis with trends",
        template_type="financial",
        query_definition=QueryDefinition.model_validate({
            "dataSource": "invoices",
            "fields": [
                {"name": "created_at", "bucket": "month", "alias": "month"},
                {"name": "amount", "aggregate": "sum", "alias": "total_revenue"},
                {"name": "*", "aggregate": "count", "alias": "invoice_count"},
            ],
            "filters": [{"field": "status", "operator": "equals", "value": "paid"}],
            "groupBy": ["month"],
            "orderBy": [{"field": "month", "direction": "asc"}],
        }),
    ),
    PrebuiltTemplate(
        id="case_performance",
        name="Case Performance Analysis",
        description="Case counts by type and status",
        template_type="operational",
        query_definition=QueryDefinition.model_validate({
            "dataSource": "cases",
            "fields": [
                {"name": "case_type"},
                {"name": "status"},
                {"name": "*", "aggregate": "count", "alias": "case_count"},
                {"name": "updated_at", "aggregate": "max", "alias": "last_activity"},
            ],
            "groupBy": ["case_type", "status"],
            "orderBy": [{"field": "case_count", "direction": "desc"}],
        }),
    ),
    PrebuiltTemplate(
        id="task_productivity",
        name="Task Productivity Report",
        description="Task completion and productivity metrics",
        template_type="productivity",
        query_definition=QueryDefinition.model_validate({
            "dataSource": "tasks",
            "fields": [
                {"name": "task_type"},
                {"name": "status"},
                {"name": "*", "aggregate": "count", "alias": "task_count"},
                {"name": "actual_hours", "aggregate": "avg", "alias": "avg_actual_hours"},
                {"name": "estimated_hours", "aggregate": "avg", "alias": "avg_estimated_hours"},
            ],
            "groupBy": ["task_type", "status"],
            "orderBy": [{"field": "task_count", "direction": "desc"}],
        }),
    ),
    PrebuiltTemplate(
        id="client_revenue",
        name="Client Revenue Analysis",
        description="Revenue breakdown by client",
        template_type="financial",
        query_definition=QueryDefinition.model_validate({
            "dataSource": "invoices",
            "fields": [
                {"name": "clients.name", "alias": "client_name"},
                {"name": "amount", "aggregate": "sum", "alias": "total_revenue"},
                {"name": "id", "aggregate": "count", "alias": "invoice_count"},
                {"name": "amount", "aggregate": "avg", "alias": "avg_invoice_value"},
            ],
            "filters": [{"field": "invoices.status", "operator": "equals", "value": "paid"}],
            "groupBy": ["clients.name"],
            "orderBy": [{"field": "total_revenue", "direction": "desc"}],
        }),
    ),
)
