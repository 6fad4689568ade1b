"""Flask application factory."""
import logging
import os
import traceback

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from pos.database import init_db
from pos.exceptions import PosError
from pos.signals import (
    sale_committed, sale_cancelled, sale_returned, stock_adjusted,
    promo_code_applied, promo_code_rejected
)

notify_logger = logging.getLogger('pos.notifications')


def _notify_sale_committed(sale, totals=None, **extra):
    notify_logger.info(f"Venta #{sale.id} confirmada")


def _notify_sale_cancelled(sale, **extra):
    notify_logger.info(f"Venta #{sale.id} anulada")


def _notify_sale_returned(sale, amount=None, **extra):
    notify_logger.info(f"Devolución registrada en venta #{sale.id}: {amount}")


def _notify_stock_adjusted(product, previous=None, new=None, reason=None, **extra):
    notify_logger.info(f"Stock de '{product.name}' ajustado: {previous} -> {new} ({reason})")


def _notify_promo_applied(code, discount=None, **extra):
    notify_logger.info(f"Código {code} aplicado (descuento {discount})")


def _notify_promo_rejected(code, reason=None, message=None, **extra):
    notify_logger.warning(f"Código {code} rechazado: {reason} - {message}")


def _connect_notifications():
    sale_committed.connect(_notify_sale_committed)
    sale_cancelled.connect(_notify_sale_cancelled)
    sale_returned.connect(_notify_sale_returned)
    stock_adjusted.connect(_notify_stock_adjusted)
    promo_code_applied.connect(_notify_promo_applied)
    promo_code_rejected.connect(_notify_promo_rejected)


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Initialize Redis Cache
    from pos.services.cache_service import init_cache
    init_cache(app)

    # Setup Prometheus metrics instrumentation
    from pos.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    # Initialize database
    init_db(app)

    _connect_notifications()

    # Error Handlers
    @app.errorhandler(PosError)
    def handle_pos_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"PosError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"PosError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from pos.blueprints.sales import sales_bp
    from pos.blueprints.inventory import inventory_bp
    from pos.blueprints.promocodes import promocodes_bp
    from pos.blueprints.customers import customers_bp
    from pos.blueprints.products import products_bp
    from pos.blueprints.dashboard import dashboard_bp
    from pos.blueprints.metrics import metrics_bp

    app.register_blueprint(sales_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(promocodes_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from pos.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
