"""
Central constants for the OrgMS application.
"""
from __future__ import annotations

# Record status (documents, letters, finance transactions, work programs)
STATUS_DRAFT = "DRAFT"
STATUS_PENDING = "PENDING"
STATUS_PUBLISH = "PUBLISH"
STATUS_PRIVATE = "PRIVATE"
STATUS_ARCHIVE = "ARCHIVE"
ENTITY_STATUSES = (STATUS_DRAFT, STATUS_PENDING, STATUS_PUBLISH, STATUS_PRIVATE, STATUS_ARCHIVE)

# Approval status
APPROVAL_PENDING = "PENDING"
APPROVAL_APPROVED = "APPROVED"
APPROVAL_REJECTED = "REJECTED"
APPROVAL_REVISION = "REVISION"
APPROVAL_RETURNED = "RETURNED"
APPROVAL_STATUSES = (APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED, APPROVAL_REVISION, APPROVAL_RETURNED)

# Approvable entity types
ENTITY_DOCUMENT = "DOCUMENT"
ENTITY_LETTER = "LETTER"
ENTITY_FINANCE = "FINANCE"
ENTITY_WORK_PROGRAM = "WORK_PROGRAM"
APPROVAL_ENTITY_TYPES = (ENTITY_DOCUMENT, ENTITY_LETTER, ENTITY_FINANCE, ENTITY_WORK_PROGRAM)

LETTER_TYPES = ("OUTGOING", "INCOMING")
LETTER_PRIORITIES = ("NORMAL", "IMPORTANT", "URGENT")
LETTER_CLASSIFICATIONS = ("GENERAL", "CONFIDENTIAL", "HIGHLY_CONFIDENTIAL")

FINANCE_TYPES = ("INCOME", "EXPENSE")

DEPARTMENTS = ("BPH", "INFOKOM", "PSDM", "LITBANG", "KWU")

# (key, display name)
PERMISSIONS = (
    ("admin.view", "Admin: dashboard"),
    ("activity.view", "Activity log: view"),
    ("activity.export", "Activity log: export"),
    ("approvals.view", "Approvals: view queue"),
    ("approvals.delete", "Approvals: delete"),
    ("documents.view", "Documents: view"),
    ("documents.create", "Documents: create"),
    ("documents.edit", "Documents: edit"),
    ("documents.delete", "Documents: delete"),
    ("documents.approve", "Documents: approve"),
    ("document_types.view", "Document types: view"),
    ("document_types.create", "Document types: create"),
    ("document_types.edit", "Document types: edit"),
    ("document_types.delete", "Document types: delete"),
    ("letters.view", "Letters: view"),
    ("letters.create", "Letters: create"),
    ("letters.edit", "Letters: edit"),
    ("letters.delete", "Letters: delete"),
    ("letters.approve", "Letters: approve"),
    ("transactions.view", "Transactions: view"),
    ("transactions.create", "Transactions: create"),
    ("transactions.edit", "Transactions: edit"),
    ("transactions.delete", "Transactions: delete"),
    ("transactions.approve", "Transactions: approve"),
    ("transaction_categories.view", "Transaction categories: view"),
    ("transaction_categories.create", "Transaction categories: create"),
    ("transaction_categories.edit", "Transaction categories: edit"),
    ("transaction_categories.delete", "Transaction categories: delete"),
    ("works.view", "Work programs: view"),
    ("works.create", "Work programs: create"),
    ("works.edit", "Work programs: edit"),
    ("works.delete", "Work programs: delete"),
    ("works.approve", "Work programs: approve"),
    ("users.view", "Users: view"),
    ("users.create", "Users: create"),
    ("users.edit", "Users: edit"),
    ("users.delete", "Users: deactivate"),
)

_VIEW = tuple(k for k, _ in PERMISSIONS if k.endswith(".view"))
_APPROVE = tuple(k for k, _ in PERMISSIONS if k.endswith(".approve"))
_MANAGE = tuple(
    k
    for k, _ in PERMISSIONS
    if k.split(".", 1)[0] in ("documents", "document_types", "letters", "transactions", "transaction_categories", "works")
    and k.split(".", 1)[1] in ("view", "create", "edit", "delete")
)

ROLE_NAMES = {
    "dpo": "Dewan Pengawas Organisasi",
    "bph": "Badan Pengurus Harian",
    "pengurus": "Pengurus",
    "anggota": "Anggota",
}

ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "dpo": tuple(dict.fromkeys(_VIEW + _APPROVE)),
    "bph": tuple(k for k, _ in PERMISSIONS),
    "pengurus": ("admin.view",) + _MANAGE,
    "anggota": (),
}
