"""Flask application factory."""
import os
import traceback
from flask import Flask, request, redirect, flash, jsonify, render_template
from flask_wtf.csrf import CSRFProtect, CSRFError
from stockroom.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize CSRF protection
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        if request.is_json:
            return jsonify({'status': 'error', 'message': 'The form expired. Reload the page.'}), 400
        flash('The form expired or was invalid. Please try again.', 'warning')
        return redirect(request.referrer or '/')

    # Error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Production: trust X-Forwarded-* from one reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Request metrics run before the auth gate so every request is counted
    from stockroom.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Initialize database
    init_db(app)

    # Auth cookie gate on every route except the login page
    from stockroom.middleware import session_gate
    app.before_request(session_gate)

    # Error Handlers
    from stockroom.exceptions import StockroomError

    @app.errorhandler(StockroomError)
    def handle_stockroom_error(error):
        """Handle application exceptions not dealt with by a view."""
        app.logger.error(f"StockroomError [{error.status_code}]: {error.message}")

        if request.is_json:
            return jsonify(error.to_dict()), error.status_code

        flash(error.message, 'danger')
        return redirect(request.referrer or '/')

    @app.errorhandler(404)
    def not_found_error(error):
        if request.is_json:
            return jsonify({'status': 'error', 'message': 'Not Found'}), 404
        return render_template('errors/404.html'), 404

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        from werkzeug.exceptions import HTTPException
        if isinstance(error, HTTPException) and error.code != 500:
            return error

        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")

        if request.is_json:
            return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500
        return render_template('errors/500.html'), 500

    # Register blueprints
    from stockroom.blueprints.auth import auth_bp
    from stockroom.blueprints.catalog import catalog_bp
    from stockroom.blueprints.sales import sales_bp
    from stockroom.blueprints.metrics import metrics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(metrics_bp)

    # Scrapers do not carry CSRF tokens
    csrf.exempt(metrics_bp)

    from stockroom.cli_commands import init_cli_commands
    init_cli_commands(app)

    @app.context_processor
    def inject_user():
        from flask import g
        return {'current_username': g.get('username')}

    app.logger.info(f"ENV={app.config.get('ENV')}")
    app.logger.info(f"SALE_ATOMIC_COMMIT={app.config.get('SALE_ATOMIC_COMMIT')}")

    return app
