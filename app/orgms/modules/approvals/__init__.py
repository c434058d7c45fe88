"""
Approval workflow shared by documents, letters, finance transactions and work programs.

- One Approval row per record, referenced polymorphically by (entity_type, entity_id)
- Approval status and record status move in lockstep (PENDING <-> PENDING, APPROVED -> PUBLISH,
  REJECTED/REVISION/RETURNED -> DRAFT)
- Every transition is written to the append-only audit trail
"""
