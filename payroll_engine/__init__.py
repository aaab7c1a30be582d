# payroll_engine/__init__.py
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()


def create_app(config_name='default'):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # Logging and environment checks
    config[config_name].init_app(app)

    db.init_app(app)

    # --- Register Blueprints ---
    from .payroll import bp as payroll_bp
    app.register_blueprint(payroll_bp)

    # --- Register Error Handlers ---
    from .errors import InputError, PayrollError

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify(error='not_found', message=str(error.description)), 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify(error='internal_error', message='The server could not complete the request.'), 500

    @app.errorhandler(PayrollError)
    def payroll_error(error):
        db.session.rollback()
        body = {'error': type(error).__name__, 'message': str(error)}
        if isinstance(error, InputError):
            body['reason'] = error.reason
            body['detail'] = error.detail
        if error.status_code >= 500:
            app.logger.error('Payroll invariant broken: %s', error)
        else:
            app.logger.warning('Rejected payroll request: %s', error)
        return jsonify(body), error.status_code

    with app.app_context():
        from .models import payroll  # noqa: F401  registers the tables
        if app.config.get('CREATE_TABLES'):
            db.create_all()

    return app
