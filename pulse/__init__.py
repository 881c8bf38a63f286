"""
Flask application factory.

Creates and configures the Flask app, registers all blueprints.
"""
import importlib

from flask import Flask


MODEL_MODULES = (
    'pulse.models.item',
    'pulse.models.snapshot',
    'pulse.models.alert',
    'pulse.models.benchmark',
    'pulse.models.digest',
)


def load_models():
    """Import models so Base.metadata knows about every table."""
    for name in MODEL_MODULES:
        importlib.import_module(name)


def create_app():
    """Create and configure the Flask application."""
    from pulse.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    # Register blueprints
    from pulse.routes.dashboard import bp as dashboard_bp
    from pulse.routes.cron import bp as cron_bp

    app.register_blueprint(dashboard_bp)
    app.register_blueprint(cron_bp)

    # Initialize circuit breakers for external API services
    from pulse.extensions import redis_client
    from pulse.services.circuit_breaker import init_breakers
    init_breakers(redis_client)

    # Schema is managed by Alembic, no create_all() here.
    load_models()

    return app
