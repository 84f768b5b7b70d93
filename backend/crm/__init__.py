# backend/crm/__init__.py
from flask import Flask, request, make_response
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    app.json.ensure_ascii = app.config["JSON_AS_ASCII"]

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.agents import agents_bp
    from .routes.customers import customers_bp
    from .routes.public_pool import public_pool_bp
    from .routes.change_customers import change_customers_bp
    from .routes.history import assignments_bp, progress_bp
    from .routes.follow_ups import follow_ups_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.dashboard import dashboard_bp, dashboard_stats_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(agents_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(public_pool_bp)
    app.register_blueprint(change_customers_bp)
    app.register_blueprint(assignments_bp)
    app.register_blueprint(progress_bp)
    app.register_blueprint(follow_ups_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(dashboard_stats_bp)

    allowed_origins = set(app.config["CORS_ORIGINS"])

    @app.before_request
    def answer_preflight():
        if request.method == "OPTIONS":
            return make_response("", 204)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, Idempotency-Key"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
            response.headers["Access-Control-Allow-Credentials"] = "true"
        return response

    from .api_response import error_response

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        if exc.code == 404:
            return error_response("接口不存在", 404, "NOT_FOUND")
        if exc.code == 405:
            return error_response("请求方法不允许", 405, "METHOD_NOT_ALLOWED")
        return error_response(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        db.session.rollback()
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return error_response("服务器内部错误", 500, "INTERNAL_ERROR")

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("BOOTSTRAP_ADMIN_ON_STARTUP") and not app.config.get("TESTING"):
        from .services.auth_service import ensure_default_admin
        with app.app_context():
            try:
                db.create_all()
                ensure_default_admin()
            except Exception:
                db.session.rollback()
                app.logger.exception("Default admin bootstrap failed")

    return app
