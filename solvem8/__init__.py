"""
SOLVEM8 Application Factory
"""
import logging
import os
from datetime import datetime, timezone

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from config import get_config

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()

# Version info
APP_VERSION = os.environ.get("APP_VERSION", "2026.10")
BUILD_TIME = os.environ.get("BUILD_TIME", "")
GIT_COMMIT = os.environ.get("GIT_COMMIT", "")


def create_app(config_name=None, storage=None):
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    from solvem8.storage import init_storage
    init_storage(app, storage)

    # Register blueprints
    from solvem8.auth import auth_bp
    from solvem8.api import api_bp
    from solvem8.payments import payments_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)
    app.register_blueprint(payments_bp)

    @app.errorhandler(413)
    def too_large(e):
        limit_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return jsonify({"message": f"File too large (max {limit_mb}MB)"}), 413

    # Health check endpoint
    @app.route('/healthz')
    def healthz():
        """Health check for load balancers and monitoring"""
        from solvem8.services.extraction import ocr_ready
        from solvem8.services.openai_service import client_ready

        db_status = "ok"
        if app.config.get("STORAGE_BACKEND") == "sql":
            try:
                from sqlalchemy import text
                db.session.execute(text('SELECT 1'))
            except Exception as e:
                db_status = f"error: {e}"

        ai_ok, ai_msg = client_ready()
        ocr_ok, ocr_msg = ocr_ready()
        return jsonify({
            "status": "ok" if db_status == "ok" else "degraded",
            "version": APP_VERSION,
            "database": db_status,
            "openai_ready": ai_ok,
            "openai_message": ai_msg,
            "ocr_ready": ocr_ok,
            "ocr_message": ocr_msg,
            "timestamp": datetime.now(timezone.utc).isoformat()
        })

    # Version endpoint
    @app.route('/version')
    def version():
        """Version and build info"""
        return jsonify({
            "version": APP_VERSION,
            "build_time": BUILD_TIME,
            "git_commit": GIT_COMMIT,
            "features": {
                "pdf_export": True,
                "ocr": True,
                "payments": bool(app.config.get("RAZORPAY_KEY_ID")),
            }
        })

    if app.config.get("STORAGE_BACKEND") == "sql":
        with app.app_context():
            from sqlalchemy import inspect
            # Only create tables if they don't exist (safe for existing DB)
            inspector = inspect(db.engine)
            if not inspector.get_table_names():
                app.logger.info('No tables found, creating...')
                db.create_all()

    return app
