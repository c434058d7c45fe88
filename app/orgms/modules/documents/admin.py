from __future__ import annotations

from flask import Blueprint, abort, g, jsonify, request

from app.orgms.db import db_session
from app.orgms.models import User
from app.orgms.modules.approvals.service import set_entity_status, submit_for_approval
from app.orgms.modules.documents.models import Document, DocumentType
from app.orgms.modules.documents.service import (
    create_document,
    create_document_type,
    delete_document,
    delete_document_type,
    document_detail,
    document_to_dict,
    document_type_in_use,
    document_type_to_dict,
    query_documents,
    update_document,
    update_document_type,
    validate_document_payload,
    validate_document_type_payload,
)
from app.orgms.rbac import require_permission
from app.orgms.utils import (
    paginate,
    parse_id_list,
    parse_optional_id,
    parse_pagination,
    request_payload,
    validation_response,
)

bp = Blueprint("documents", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_document(s, document_id: int) -> Document:
    doc = s.get(Document, document_id)
    if not doc:
        abort(404)
    return doc


# ---------- Document types ----------
@bp.get("/document-types")
@require_permission("document_types.view")
def document_types_list():
    s = db_session()
    types = s.query(DocumentType).order_by(DocumentType.name.asc()).all()
    return jsonify({"data": [document_type_to_dict(t) for t in types]})


@bp.post("/document-types")
@require_permission("document_types.create")
def document_types_create():
    s = db_session()
    u = _current_user()
    payload = request_payload()
    errors = validate_document_type_payload(s, payload)
    if errors:
        return validation_response(errors)
    t = create_document_type(s, payload, u)
    s.commit()
    return jsonify({"document_type": document_type_to_dict(t)}), 201


@bp.put("/document-types/<int:type_id>")
@require_permission("document_types.edit")
def document_types_update(type_id: int):
    s = db_session()
    u = _current_user()
    t = s.get(DocumentType, type_id)
    if not t:
        abort(404)
    payload = request_payload()
    errors = validate_document_type_payload(s, {"name": t.name, **payload}, current=t)
    if errors:
        return validation_response(errors)
    update_document_type(s, t, payload, u)
    s.commit()
    return jsonify({"document_type": document_type_to_dict(t)})


@bp.delete("/document-types/<int:type_id>")
@require_permission("document_types.delete")
def document_types_delete(type_id: int):
    s = db_session()
    u = _current_user()
    t = s.get(DocumentType, type_id)
    if not t:
        abort(404)
    if document_type_in_use(s, t):
        return jsonify({"error": "Document type is in use by one or more documents."}), 409
    delete_document_type(s, t, u)
    s.commit()
    return jsonify({"ok": True, "id": type_id})


# ---------- Documents ----------
@bp.get("/documents")
@require_permission("documents.view")
def documents_list():
    s = db_session()
    page, limit = parse_pagination(request.args)
    q = query_documents(
        s,
        status=request.args.get("status"),
        document_type_id=parse_optional_id(request.args.get("document_type_id")),
        search=request.args.get("search") or request.args.get("q"),
    )
    pg = paginate(q, page, limit)
    return jsonify({"data": [document_to_dict(d) for d in pg.items], "pagination": pg.meta()})


@bp.post("/documents")
@require_permission("documents.create")
def documents_create():
    s = db_session()
    u = _current_user()
    payload = request_payload()
    errors = validate_document_payload(s, payload)
    if errors:
        return validation_response(errors)
    doc = create_document(s, payload, u)
    s.commit()
    return jsonify({"document": document_detail(s, doc)}), 201


@bp.post("/documents/bulk-delete")
@require_permission("documents.delete")
def documents_bulk_delete():
    s = db_session()
    u = _current_user()
    ids = parse_id_list(request_payload().get("ids"))
    if not ids:
        return jsonify({"error": "No valid document ids provided."}), 400
    deleted: list[int] = []
    missing: list[int] = []
    for document_id in ids:
        doc = s.get(Document, document_id)
        if doc is None:
            missing.append(document_id)
            continue
        delete_document(s, doc, u)
        deleted.append(document_id)
    s.commit()
    return jsonify({"deleted": deleted, "missing": missing})


@bp.get("/documents/<int:document_id>")
@require_permission("documents.view")
def document_detail_view(document_id: int):
    s = db_session()
    doc = _get_document(s, document_id)
    return jsonify({"document": document_detail(s, doc)})


@bp.put("/documents/<int:document_id>")
@require_permission("documents.edit")
def document_update(document_id: int):
    s = db_session()
    u = _current_user()
    doc = _get_document(s, document_id)
    payload = request_payload()
    errors = validate_document_payload(s, payload, partial=True)
    if errors:
        return validation_response(errors)
    update_document(s, doc, payload, u, reason=(payload.get("reason") or "").strip() or None)
    s.commit()
    return jsonify({"document": document_detail(s, doc)})


@bp.delete("/documents/<int:document_id>")
@require_permission("documents.delete")
def document_delete(document_id: int):
    s = db_session()
    u = _current_user()
    doc = _get_document(s, document_id)
    delete_document(s, doc, u)
    s.commit()
    return jsonify({"ok": True, "id": document_id})


@bp.post("/documents/<int:document_id>/submit")
@require_permission("documents.edit")
def document_submit(document_id: int):
    s = db_session()
    u = _current_user()
    doc = _get_document(s, document_id)
    submit_for_approval(s, doc, u, note=request_payload().get("note"))
    s.commit()
    return jsonify({"document": document_detail(s, doc)})


@bp.post("/documents/<int:document_id>/status")
@require_permission("documents.edit")
def document_status(document_id: int):
    s = db_session()
    u = _current_user()
    doc = _get_document(s, document_id)
    payload = request_payload()
    set_entity_status(s, doc, payload.get("status"), u, reason=(payload.get("reason") or "").strip() or None)
    s.commit()
    return jsonify({"document": document_detail(s, doc)})
