from flask import Flask, jsonify, request
from dotenv import load_dotenv
from pydantic import ValidationError
import logging
from flask_cors import CORS
from .config import Config, settings
from .citation.errors import UnknownViewError
from .services.file_resolver import build_default_resolver
from .services.response_formatter import APIResponseFormatter

logger = logging.getLogger(__name__)


def create_app(config_overrides=None):
    load_dotenv()  # Load environment variables from .env file

    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    if app.config.get('EVIDENCE_RESOLVER') is None:
        app.config['EVIDENCE_RESOLVER'] = build_default_resolver(settings)

    cors_origins = [o.strip() for o in settings.cors_origins.split(',') if o.strip()] or Config.CORS_ORIGINS
    CORS(app,
         resources={r"/api/*": {"origins": cors_origins}},
         supports_credentials=True,
         methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
         allow_headers=['Content-Type', 'Authorization'])

    from .views import views
    app.register_blueprint(views, url_prefix='/')

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        """Malformed citation records"""
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        logger.warning(f"[API] Rejected citation record: {errors}")
        return jsonify(APIResponseFormatter.format_validation_error_response(errors)), 400

    @app.errorhandler(UnknownViewError)
    def handle_unknown_view(e):
        return jsonify(APIResponseFormatter.format_error_response(
            str(e), 'VIEW_NOT_FOUND', 404
        )), 404

    # Errors escaping the routes still carry CORS headers
    @app.errorhandler(500)
    def handle_500_error(e):
        """Ensure CORS headers on 500 errors"""
        logger.error(f"500 error: {e}", exc_info=True)

        response = jsonify(APIResponseFormatter.format_error_response(
            'Internal server error', 'INTERNAL_ERROR', 500
        ))

        origin = request.headers.get('Origin')
        if origin in cors_origins:
            response.headers.add('Access-Control-Allow-Origin', origin)
            response.headers.add('Access-Control-Allow-Credentials', 'true')
        return response, 500

    logger.info(f"[API] Citation registry app created (CORS origins: {cors_origins})")
    return app
