import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session
from werkzeug.exceptions import HTTPException

from app.orgms.admin import bp as admin_bp
from app.orgms.auth import bp as auth_bp, load_current_user
from app.orgms.config import load_config
from app.orgms.db import init_db, teardown_db_session
from app.orgms.modules.approvals.admin import bp as approvals_bp
from app.orgms.modules.documents.admin import bp as documents_bp
from app.orgms.modules.finance.admin import bp as finance_bp
from app.orgms.modules.letters.admin import bp as letters_bp
from app.orgms.modules.users.admin import bp as users_bp
from app.orgms.modules.work_programs.admin import bp as work_programs_bp
from app.orgms.routes import bp as routes_bp
from app.orgms.security import ensure_csrf_token, validate_csrf

logger = logging.getLogger(__name__)

_UNAUTHENTICATED_PATHS = ("/health", "/healthz", "/public/")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    app.logger.setLevel(app.config["LOG_LEVEL"])
    logging.getLogger("app.orgms").setLevel(app.config["LOG_LEVEL"])

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_UNAUTHENTICATED_PATHS):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/logout issue and clear the token themselves
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return jsonify({"error": "CSRF token missing or invalid."}), 400
        return None

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(approvals_bp, url_prefix="/admin")
    app.register_blueprint(documents_bp, url_prefix="/admin")
    app.register_blueprint(letters_bp, url_prefix="/admin")
    app.register_blueprint(finance_bp, url_prefix="/admin")
    app.register_blueprint(work_programs_bp, url_prefix="/admin")
    app.register_blueprint(users_bp, url_prefix="/admin")

    def _load_user_wrapper():
        if request.path.startswith(_UNAUTHENTICATED_PATHS):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(401)
    def _err_401(e):  # type: ignore[no-redef]
        return jsonify({"error": "Authentication required."}), 401

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return jsonify({"error": "Forbidden.", "missing_permission": missing}), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return jsonify({"error": "Not found."}), 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error."}), 500

    logger.info("create_app() complete; app ready to serve (env=%s)", env or "development")
    return app
