from flask import Blueprint, abort, jsonify, request

from app.orgms.constants import STATUS_PUBLISH
from app.orgms.db import db_session
from app.orgms.modules.documents.service import query_documents
from app.orgms.modules.work_programs.service import public_work_program_to_dict, query_work_programs
from app.orgms.utils import iso, paginate, parse_optional_id, parse_pagination

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for the load balancer. No DB access, minimal overhead.
    """
    return "ok", 200


def _public_document(doc) -> dict:
    return {
        "id": doc.id,
        "name": doc.name,
        "document_type": doc.document_type.name if doc.document_type else None,
        "file_url": doc.file_url,
        "published_at": iso(doc.updated_at),
    }


@bp.get("/public/<resource>")
def public_list(resource: str):
    """Published records only; no login required."""
    s = db_session()
    page, limit = parse_pagination(request.args)
    search = request.args.get("search") or request.args.get("q")

    if resource == "documents":
        q = query_documents(
            s,
            status=STATUS_PUBLISH,
            document_type_id=parse_optional_id(request.args.get("document_type_id")),
            search=search,
        )
        pg = paginate(q, page, limit)
        return jsonify({"data": [_public_document(d) for d in pg.items], "pagination": pg.meta()})

    if resource == "work-programs":
        q = query_work_programs(s, status=STATUS_PUBLISH, department=request.args.get("department"), search=search)
        pg = paginate(q, page, limit)
        return jsonify({"data": [public_work_program_to_dict(wp) for wp in pg.items], "pagination": pg.meta()})

    abort(404)
