"""
Custom report builder service.

Ties the QueryBuilder to the storage collaborator and owns report template
persistence.

OWNERSHIP RULES:
- Templates are listed/read when public OR created by the caller
- Only the creator may update, delete or re-share a template
- Ownership is checked BEFORE any mutation; a denied request changes nothing

Reading a private template that belongs to someone else is reported exactly
like a missing template, so ids cannot be probed.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError
from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from casebook.core.audit import AuditLog
from casebook.core.exceptions import (
    AccessDeniedError,
    QueryExecutionError,
    TemplateNotFoundError,
)
from casebook.db.database import Database, QueryResult
from casebook.models.report_template import ReportTemplate
from casebook.models.user import User
from casebook.schemas.report import (
    PrebuiltTemplate,
    QueryDefinition,
    ReportBuilderAnalytics,
    ReportColumn,
    ReportResult,
    TemplateActivity,
    TemplateCreate,
    TemplateUpdate,
    TemplateUsage,
)
from casebook.services.data_sources import FieldType, record_model
from casebook.services.prebuilt_templates import PREBUILT_TEMPLATES
from casebook.services.query_builder import (
    CompiledQuery,
    QueryBuilder,
    column_label,
    coerce_definition,
)

logger = logging.getLogger(__name__)

RESOURCE = "report_template"


class ReportBuilderService:
    """One instance per request: holds the request's ORM session."""

    def __init__(
        self,
        session: Session,
        builder: QueryBuilder,
        database: Database,
        default_timeout: Optional[float] = None,
    ):
        self.session = session
        self.builder = builder
        self.database = database
        self.default_timeout = default_timeout

    # ------------------------------------------------------------------
    # Data sources and execution
    # ------------------------------------------------------------------

    def get_data_sources(self) -> Dict[str, Any]:
        return self.builder.registry.to_dict()

    def build_query(
        self,
        definition: Union[QueryDefinition, Mapping[str, Any]],
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> CompiledQuery:
        return self.builder.build_query(definition, parameters)

    def execute_report(
        self,
        definition: Union[QueryDefinition, Mapping[str, Any]],
        parameters: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ReportResult:
        """Compile, run and type the rows of a report.

        Validation errors are raised before the database is touched.
        """
        compiled = self.build_query(definition, parameters)
        effective_timeout = self._effective_timeout(timeout)

        logger.info(
            f"[REPORTS] Executing report on {compiled.data_source} "
            f"({len(compiled.params)} bound params, timeout={effective_timeout})"
        )
        try:
            result = self.database.query(compiled.sql, compiled.params, timeout=effective_timeout)
        except SQLAlchemyError as exc:
            logger.error(
                f"[REPORTS] Query failed on {compiled.data_source}: {exc}; sql={compiled.sql}",
                exc_info=True,
            )
            raise QueryExecutionError(cause=exc) from exc

        columns, column_types = self._describe_columns(compiled, result)
        rows = self._typed_rows(compiled.data_source, column_types, result.rows)

        logger.info(f"[REPORTS] Report executed: {len(rows)} rows, {len(columns)} columns")
        return ReportResult(rows=rows, columns=columns, total_rows=len(rows))

    def _effective_timeout(self, timeout: Optional[float]) -> Optional[float]:
        if timeout is None:
            return self.default_timeout
        if self.default_timeout is None:
            return timeout
        return min(timeout, self.default_timeout)

    def _describe_columns(
        self, compiled: CompiledQuery, result: QueryResult
    ) -> Tuple[List[ReportColumn], Tuple[Tuple[str, FieldType], ...]]:
        known = {column.name: column.type for column in compiled.columns}
        descriptor = self.builder.registry[compiled.data_source]
        columns: List[ReportColumn] = []
        typed: List[Tuple[str, FieldType]] = []
        for result_field in result.fields:
            field_type = known.get(result_field.name)
            if field_type is None and descriptor.get_field(result_field.name) is not None:
                field_type = descriptor.get_field(result_field.name).type
            if field_type is not None:
                typed.append((result_field.name, field_type))
                type_name = field_type.value
            else:
                type_name = result_field.type_hint or FieldType.TEXT.value
            columns.append(ReportColumn(
                name=result_field.name,
                type=type_name,
                label=column_label(result_field.name),
            ))
        return columns, tuple(typed)

    @staticmethod
    def _typed_rows(
        data_source: str,
        column_types: Tuple[Tuple[str, FieldType], ...],
        rows: List[Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        model = record_model(data_source, column_types)
        try:
            return [model.model_validate(row).model_dump() for row in rows]
        except ValidationError as exc:
            logger.error(f"[REPORTS] Row does not match {data_source} schema: {exc}")
            raise QueryExecutionError(cause=exc) from exc

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def save_template(self, data: TemplateCreate, user_id: str) -> ReportTemplate:
        # Refuse to persist a definition that cannot compile
        self.build_query(data.query_definition, data.parameters)

        template = ReportTemplate(
            name=data.name,
            description=data.description,
            template_type=data.template_type,
            query_definition=_serialize_definition(data.query_definition),
            parameters=dict(data.parameters),
            created_by=user_id,
            is_public=data.is_public,
        )
        self.session.add(template)
        self.session.commit()
        self.session.refresh(template)

        AuditLog.log_action("create", RESOURCE, template.id, user_id,
                            changes={"name": template.name, "is_public": template.is_public})
        logger.info(f"[REPORTS] Template {template.id} saved by user {user_id}")
        return template

    def list_templates(self, user_id: str) -> List[ReportTemplate]:
        return (
            self.session.query(ReportTemplate)
            .filter(or_(ReportTemplate.is_public.is_(True), ReportTemplate.created_by == user_id))
            .order_by(ReportTemplate.created_at.desc(), ReportTemplate.name)
            .all()
        )

    def get_template(self, template_id: str, user_id: str) -> ReportTemplate:
        template = self.session.get(ReportTemplate, template_id)
        if template is None:
            raise TemplateNotFoundError()
        if not template.is_public and template.created_by != user_id:
            AuditLog.log_access_denied("read", RESOURCE, template_id, user_id, "Private template")
            raise TemplateNotFoundError()
        return template

    def update_template(self, template_id: str, updates: TemplateUpdate, user_id: str) -> ReportTemplate:
        template = self._owned_template(template_id, user_id, "update")
        changes = updates.model_dump(exclude_unset=True)

        if "query_definition" in changes and updates.query_definition is None:
            changes.pop("query_definition")
        if "query_definition" in changes or "parameters" in changes:
            definition = updates.query_definition or coerce_definition(template.query_definition)
            parameters = updates.parameters if updates.parameters is not None else template.parameters
            self.build_query(definition, parameters)

        for key in changes:
            if key == "query_definition":
                template.query_definition = _serialize_definition(updates.query_definition)
            elif key == "parameters":
                template.parameters = dict(updates.parameters or {})
            elif key in ("name", "template_type", "is_public") and changes[key] is None:
                continue
            else:
                setattr(template, key, changes[key])

        self.session.commit()
        self.session.refresh(template)

        AuditLog.log_action("update", RESOURCE, template.id, user_id, changes={"fields": sorted(changes)})
        return template

    def delete_template(self, template_id: str, user_id: str) -> None:
        template = self._owned_template(template_id, user_id, "delete")
        self.session.delete(template)
        self.session.commit()
        AuditLog.log_action("delete", RESOURCE, template_id, user_id)

    def execute_template(
        self,
        template_id: str,
        user_id: str,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ReportResult:
        template = self.get_template(template_id, user_id)
        merged = {**(template.parameters or {}), **(parameters or {})}
        return self.execute_report(template.query_definition, merged, timeout=timeout)

    def _owned_template(self, template_id: str, user_id: str, action: str) -> ReportTemplate:
        template = self.session.get(ReportTemplate, template_id)
        if template is None:
            raise TemplateNotFoundError()
        if template.created_by != user_id:
            AuditLog.log_access_denied(action, RESOURCE, template_id, user_id, "Not template owner")
            raise AccessDeniedError(f"Access denied to {action} this template")
        return template

    # ------------------------------------------------------------------
    # Catalogue and analytics
    # ------------------------------------------------------------------

    @staticmethod
    def get_prebuilt_templates() -> Tuple[PrebuiltTemplate, ...]:
        return PREBUILT_TEMPLATES

    def get_analytics(self, user_id: str) -> ReportBuilderAnalytics:
        visible = or_(ReportTemplate.is_public.is_(True), ReportTemplate.created_by == user_id)

        usage_rows = (
            self.session.query(
                ReportTemplate.template_type,
                func.count(ReportTemplate.id).label("template_count"),
                func.sum(case((ReportTemplate.is_public.is_(True), 1), else_=0)).label("public_templates"),
                func.sum(case((ReportTemplate.is_public.is_(False), 1), else_=0)).label("private_templates"),
            )
            .filter(visible)
            .group_by(ReportTemplate.template_type)
            .order_by(ReportTemplate.template_type)
            .all()
        )

        recent_rows = (
            self.session.query(ReportTemplate, User)
            .outerjoin(User, ReportTemplate.created_by == User.id)
            .filter(visible)
            .order_by(ReportTemplate.created_at.desc(), ReportTemplate.name)
            .limit(10)
            .all()
        )

        return ReportBuilderAnalytics(
            template_usage=[
                TemplateUsage(
                    template_type=r.template_type,
                    template_count=r.template_count,
                    public_templates=int(r.public_templates or 0),
                    private_templates=int(r.private_templates or 0),
                )
                for r in usage_rows
            ],
            recent_activity=[
                TemplateActivity(
                    id=t.id,
                    name=t.name,
                    template_type=t.template_type,
                    created_at=t.created_at,
                    created_by_name=(u.full_name or u.email) if u else None,
                )
                for t, u in recent_rows
            ],
        )


def _serialize_definition(definition: QueryDefinition) -> Dict[str, Any]:
    """JSON form stored in custom_report_templates.query_definition."""
    return definition.model_dump(mode="json", by_alias=True, exclude_none=True)
