"""
Feature modules live under this package.

Keep module boundaries clean: each module owns its routes/models/service,
while reusing platform primitives (auth, RBAC, audit, DB session). Approvable
records (documents, letters, finance, work programs) route every status change
through the approvals module.
"""
