from casebook.models.user import User
from casebook.models.client import Client
from casebook.models.case import Case
from casebook.models.invoice import Invoice, InvoiceItem
from casebook.models.task import Task
from casebook.models.time_entry import TimeEntry
from casebook.models.report_template import ReportTemplate

__all__ = ["User", "Client", "Case", "Invoice", "InvoiceItem", "Task", "TimeEntry", "ReportTemplate"]
