# backend/tienda/__init__.py
import logging
import os

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    """
    Application factory.

    test_config overrides are applied before extensions initialise, since
    Flask-SQLAlchemy reads the database URI at init time.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    if not app.config.get("ARTIFACT_DIR"):
        app.config["ARTIFACT_DIR"] = os.path.join(app.instance_path, "artifacts")

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))
    logging.getLogger("tienda").setLevel(app.logger.level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sales import sales_bp
    from .routes.purchases import purchases_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(purchases_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
