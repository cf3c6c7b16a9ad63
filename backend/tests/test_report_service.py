"""
Tests for ReportBuilderService: execution against SQLite, template CRUD,
ownership rules, analytics and query timeouts.
"""
from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

from casebook.core.exceptions import (
    AccessDeniedError,
    InvalidFilterError,
    QueryExecutionError,
    QueryTimeoutError,
    TemplateNotFoundError,
    UnknownDataSourceError,
)
from casebook.db.database import statement_timeout_ms, to_bind_params
from casebook.models.report_template import ReportTemplate
from casebook.schemas.report import QueryDefinition, TemplateCreate, TemplateUpdate
from casebook.services.data_sources import (
    DataSourceDescriptor,
    DataSourceRegistry,
    FieldDescriptor,
    FieldType,
)
from casebook.services.prebuilt_templates import PREBUILT_TEMPLATES
from casebook.services.query_builder import QueryBuilder, coerce_definition
from casebook.services.report_service import ReportBuilderService

OPEN_CASES = {
    "dataSource": "cases",
    "fields": [{"name": "case_number"}, {"name": "status"}],
    "filters": [{"field": "status", "operator": "equals", "value": "open", "parameter": "status"}],
    "orderBy": [{"field": "case_number"}],
}


def _template(name="Open cases", is_public=False, **kwargs) -> TemplateCreate:
    return TemplateCreate(
        name=name,
        template_type=kwargs.pop("template_type", "operational"),
        query_definition=QueryDefinition.model_validate(kwargs.pop("definition", OPEN_CASES)),
        is_public=is_public,
        **kwargs,
    )


# =============================================================================
# Execution
# =============================================================================


class TestExecuteReport:

    def test_rows_and_columns(self, report_service, practice):
        result = report_service.execute_report(OPEN_CASES)

        assert result.total_rows == 2
        assert [row["case_number"] for row in result.rows] == ["CIV-001", "FAM-002"]
        assert [(c.name, c.type, c.label) for c in result.columns] == [
            ("case_number", "text", "Case Number"),
            ("status", "enum", "Status"),
        ]

    def test_runtime_parameters(self, report_service, practice):
        result = report_service.execute_report(OPEN_CASES, {"status": "closed"})
        assert [row["case_number"] for row in result.rows] == ["TAX-003"]

    def test_rows_are_typed(self, report_service, practice):
        result = report_service.execute_report({
            "dataSource": "invoices",
            "fields": [{"name": "id"}, {"name": "amount"}, {"name": "created_at"}],
            "filters": [{"field": "invoice_number", "operator": "equals", "value": "INV-2026-0001"}],
        })
        row = result.rows[0]
        assert isinstance(row["id"], UUID)
        assert row["amount"] == Decimal("1080.00")
        assert row["created_at"].date() == date(2026, 1, 15)

    def test_revenue_by_month(self, report_service, practice):
        result = report_service.execute_report(PREBUILT_TEMPLATES[0].query_definition)

        assert result.rows == [
            {"month": date(2026, 1, 1), "total_revenue": Decimal("2260.00"), "invoice_count": 2},
            {"month": date(2026, 2, 1), "total_revenue": Decimal("2360.00"), "invoice_count": 1},
        ]
        assert [c.label for c in result.columns] == ["Month", "Total Revenue", "Invoice Count"]

    def test_client_revenue_joins_clients(self, report_service, practice):
        result = report_service.execute_report(PREBUILT_TEMPLATES[3].query_definition)

        top = result.rows[0]
        assert top["client_name"] == "Mehta Textiles Pvt Ltd"
        assert top["total_revenue"] == Decimal("3440.00")
        assert top["invoice_count"] == 2
        assert top["avg_invoice_value"] == Decimal("1720.00")
        assert result.total_rows == 2

    def test_joined_filter_keeps_base_table_columns(self, report_service, practice):
        result = report_service.execute_report({
            "dataSource": "cases",
            "filters": [{"field": "clients.name", "operator": "equals", "value": "Anita Sharma"}],
        })

        family_case = practice.cases[1]
        assert result.total_rows == 1
        row = result.rows[0]
        assert str(row["id"]) == family_case.id
        assert row["status"] == "open"
        assert row["case_number"] == "FAM-002"
        names = [c.name for c in result.columns]
        assert len(names) == len(set(names))

    def test_group_by_base_column_alongside_joined_column(self, report_service, practice):
        result = report_service.execute_report({
            "dataSource": "cases",
            "fields": [
                {"name": "status"},
                {"name": "clients.name", "alias": "client_name"},
                {"name": "*", "aggregate": "count", "alias": "case_count"},
            ],
            "groupBy": ["status", "client_name"],
            "orderBy": [{"field": "client_name"}, {"field": "status"}],
        })

        assert result.rows == [
            {"status": "open", "client_name": "Anita Sharma", "case_count": 1},
            {"status": "closed", "client_name": "Mehta Textiles Pvt Ltd", "case_count": 1},
            {"status": "open", "client_name": "Mehta Textiles Pvt Ltd", "case_count": 1},
        ]

    @pytest.mark.parametrize("field, operator, value, expected", [
        ("case_number", "contains", "_", []),
        ("title", "contains", "%", []),
        ("case_number", "starts_with", "C_V", []),
        ("case_number", "starts_with", "CIV-", ["CIV-001"]),
        ("title", "ends_with", "reply", ["TAX-003"]),
    ])
    def test_pattern_filters_match_wildcards_literally(self, report_service, practice, field, operator, value, expected):
        result = report_service.execute_report({
            "dataSource": "cases",
            "fields": [{"name": "case_number"}],
            "filters": [{"field": field, "operator": operator, "value": value}],
            "orderBy": [{"field": "case_number"}],
        })
        assert [row["case_number"] for row in result.rows] == expected

    def test_validation_errors_happen_before_io(self, report_service, database, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("database must not be called")

        monkeypatch.setattr(database, "query", fail)
        with pytest.raises(UnknownDataSourceError):
            report_service.execute_report({"dataSource": "payroll"})
        with pytest.raises(InvalidFilterError):
            report_service.execute_report({
                "dataSource": "cases",
                "filters": [{"field": "created_at", "operator": "between", "value": ["2026-01-01"]}],
            })

    def test_storage_errors_are_wrapped(self, session, database):
        ghost_registry = DataSourceRegistry({
            "ghosts": DataSourceDescriptor(
                table="ghosts",
                fields=(FieldDescriptor("id", FieldType.UUID, "ID"),),
            ),
        })
        service = ReportBuilderService(session, QueryBuilder(ghost_registry, dialect="sqlite"), database)

        with pytest.raises(QueryExecutionError) as excinfo:
            service.execute_report({"dataSource": "ghosts", "fields": [{"name": "id"}]})

        assert excinfo.value.__cause__ is not None
        assert "ghosts" not in excinfo.value.public_message

    def test_timeout_is_capped_by_default(self, report_service):
        assert report_service._effective_timeout(None) == 5
        assert report_service._effective_timeout(60) == 5
        assert report_service._effective_timeout(0.5) == 0.5


class TestDatabase:

    def test_placeholders_become_named_binds(self):
        sql, params = to_bind_params("SELECT id FROM cases WHERE status = $1 AND priority IN ($2, $3)",
                                     ("open", "high", "urgent"))
        assert sql == "SELECT id FROM cases WHERE status = :p1 AND priority IN (:p2, :p3)"
        assert params == {"p1": "open", "p2": "high", "p3": "urgent"}

    @pytest.mark.parametrize("seconds, expected", [(0.0004, 1), (0.001, 1), (0.0015, 2), (2.5, 2500)])
    def test_statement_timeout_never_rounds_to_zero(self, seconds, expected):
        # statement_timeout = 0 would disable the limit on PostgreSQL
        assert statement_timeout_ms(seconds) == expected

    def test_missing_parameter(self):
        with pytest.raises(ValueError):
            to_bind_params("SELECT $2", ("only-one",))

    def test_query_reports_fields(self, database, practice):
        result = database.query("SELECT case_number FROM cases WHERE status = $1", ("closed",))
        assert result.rows == [{"case_number": "TAX-003"}]
        assert [f.name for f in result.fields] == ["case_number"]

    def test_long_query_is_aborted(self, database):
        endless = (
            "WITH RECURSIVE counter(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM counter WHERE x < $1) "
            "SELECT COUNT(*) AS n FROM counter"
        )
        with pytest.raises(QueryTimeoutError):
            database.query(endless, (10 ** 12,), timeout=0.05)

        # The connection is usable again once the handler is removed
        assert database.query("SELECT 1 AS one").rows == [{"one": 1}]


# =============================================================================
# Templates
# =============================================================================


class TestTemplates:

    def test_save_and_round_trip(self, report_service, session, owner):
        data = _template(parameters={"status": "open"})
        saved = report_service.save_template(data, owner.id)

        session.expire_all()
        reloaded = session.get(ReportTemplate, saved.id)
        assert coerce_definition(reloaded.query_definition) == data.query_definition
        assert reloaded.parameters == {"status": "open"}
        assert reloaded.created_by == owner.id

    def test_invalid_definition_is_not_saved(self, report_service, session, owner):
        with pytest.raises(UnknownDataSourceError):
            report_service.save_template(_template(definition={"dataSource": "nope"}), owner.id)
        assert session.query(ReportTemplate).count() == 0

    def test_listing_shows_public_and_own(self, report_service, owner, other_user):
        report_service.save_template(_template("Mine"), owner.id)
        report_service.save_template(_template("Shared", is_public=True), other_user.id)
        report_service.save_template(_template("Theirs"), other_user.id)

        names = sorted(t.name for t in report_service.list_templates(owner.id))
        assert names == ["Mine", "Shared"]

    def test_private_template_hidden_from_others(self, report_service, owner, other_user):
        template = report_service.save_template(_template(), owner.id)

        assert report_service.get_template(template.id, owner.id).id == template.id
        with pytest.raises(TemplateNotFoundError):
            report_service.get_template(template.id, other_user.id)

    def test_public_template_readable_by_others(self, report_service, owner, other_user):
        template = report_service.save_template(_template(is_public=True), owner.id)
        assert report_service.get_template(template.id, other_user.id).name == "Open cases"

    def test_partial_update(self, report_service, owner):
        template = report_service.save_template(_template(description="Weekly"), owner.id)

        updated = report_service.update_template(template.id, TemplateUpdate(name="Renamed"), owner.id)

        assert updated.name == "Renamed"
        assert updated.description == "Weekly"
        assert updated.is_public is False
        assert coerce_definition(updated.query_definition).data_source == "cases"

    def test_update_with_invalid_definition_changes_nothing(self, report_service, session, owner):
        template = report_service.save_template(_template(), owner.id)

        with pytest.raises(UnknownDataSourceError):
            report_service.update_template(
                template.id,
                TemplateUpdate(name="Broken", query_definition=QueryDefinition(data_source="nope")),
                owner.id,
            )

        session.expire_all()
        assert session.get(ReportTemplate, template.id).name == "Open cases"

    @pytest.mark.parametrize("is_public", [False, True])
    def test_non_owner_cannot_update(self, report_service, session, owner, other_user, is_public):
        template = report_service.save_template(_template(is_public=is_public), owner.id)

        with pytest.raises(AccessDeniedError):
            report_service.update_template(template.id, TemplateUpdate(name="Hijacked"), other_user.id)

        session.expire_all()
        assert session.get(ReportTemplate, template.id).name == "Open cases"

    def test_non_owner_cannot_delete(self, report_service, session, owner, other_user):
        template = report_service.save_template(_template(is_public=True), owner.id)

        with pytest.raises(AccessDeniedError):
            report_service.delete_template(template.id, other_user.id)

        session.expire_all()
        assert session.get(ReportTemplate, template.id) is not None

    def test_owner_deletes(self, report_service, owner):
        template = report_service.save_template(_template(), owner.id)
        report_service.delete_template(template.id, owner.id)

        with pytest.raises(TemplateNotFoundError):
            report_service.get_template(template.id, owner.id)

    def test_missing_template(self, report_service, owner):
        with pytest.raises(TemplateNotFoundError):
            report_service.update_template("does-not-exist", TemplateUpdate(name="x"), owner.id)

    def test_execute_template_merges_parameters(self, report_service, owner, practice):
        template = report_service.save_template(_template(parameters={"status": "closed"}), owner.id)

        defaults = report_service.execute_template(template.id, owner.id)
        overridden = report_service.execute_template(template.id, owner.id, {"status": "open"})

        assert [r["case_number"] for r in defaults.rows] == ["TAX-003"]
        assert [r["case_number"] for r in overridden.rows] == ["CIV-001", "FAM-002"]

    def test_execute_private_template_of_another_user(self, report_service, owner, other_user):
        template = report_service.save_template(_template(), owner.id)
        with pytest.raises(TemplateNotFoundError):
            report_service.execute_template(template.id, other_user.id)


# =============================================================================
# Catalogue and analytics
# =============================================================================


class TestAnalytics:

    def test_data_sources_listing(self, report_service):
        sources = report_service.get_data_sources()
        assert set(sources) == {"cases", "clients", "invoices", "tasks", "time_entries"}
        assert sources["invoices"]["joins"][0]["table"] == "clients"

    def test_prebuilt_templates(self, report_service):
        assert len(report_service.get_prebuilt_templates()) == 4

    def test_usage_counts_visible_templates_only(self, report_service, owner, other_user):
        report_service.save_template(_template("Revenue", is_public=True, template_type="financial"), owner.id)
        report_service.save_template(_template("Scratch", template_type="custom"), owner.id)
        report_service.save_template(_template("Hidden", template_type="custom"), other_user.id)

        analytics = report_service.get_analytics(owner.id)

        usage = {u.template_type: u for u in analytics.template_usage}
        assert usage["financial"].template_count == 1
        assert usage["financial"].public_templates == 1
        assert usage["custom"].template_count == 1
        assert usage["custom"].private_templates == 1

        assert {a.name for a in analytics.recent_activity} == {"Revenue", "Scratch"}
        assert {a.created_by_name for a in analytics.recent_activity} == {"Asha Rao"}
