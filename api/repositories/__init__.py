"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping services free of SQL.
The ``Sql*Store`` classes adapt them to the collaborator protocols in
``services.contracts``, opening one short-lived session per call.
"""

from repositories.certificate_repository import (
    CertificateRepository,
    SqlCertificateRecordStore,
)
from repositories.template_repository import SqlTemplateStore, TemplateRepository
from repositories.utils import log_slow_query

__all__ = [
    "CertificateRepository",
    "SqlCertificateRecordStore",
    "SqlTemplateStore",
    "TemplateRepository",
    "log_slow_query",
]
