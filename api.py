from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge
from datetime import datetime
import logging

from apis.auth_api import auth_bp
from apis.private_data_api import private_data_bp
from apis.publication_api import publication_bp
from apis.registration_api import registration_bp
from config import CORS_CONFIG, FLASK_CONFIG, LOG_CONFIG, UPLOAD_CONFIG
from db.session_store import SupabaseSessionStore
from db.storage import SupabaseBlobStore
from db.supabase_client import SupabaseInitializer
from exceptions import InternalError, RepositoryError, ValidationError

logger = logging.getLogger(__name__)


def create_app(supabase=None, blob_store=None, session_store=None) -> Flask:
    """
    Build the publication repository API

    Args:
        supabase: Supabase client; a service-role client from config when omitted
        blob_store: where publication files go; the configured Supabase bucket when omitted
        session_store: admin session backend; the admin_sessions table when omitted

    Returns:
        Flask: the configured application
    """
    if supabase is None:
        supabase = SupabaseInitializer().supabase

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = UPLOAD_CONFIG['max_content_length']
    CORS(app, origins=CORS_CONFIG['origins'], supports_credentials=CORS_CONFIG['supports_credentials'])

    app.extensions['supabase'] = supabase
    app.extensions['blob_store'] = blob_store or SupabaseBlobStore(supabase)
    app.extensions['session_store'] = session_store or SupabaseSessionStore(supabase)

    app.register_blueprint(auth_bp)
    app.register_blueprint(registration_bp)
    app.register_blueprint(publication_bp)
    app.register_blueprint(private_data_bp)

    @app.errorhandler(RepositoryError)
    def handle_repository_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(error):
        limit_mb = UPLOAD_CONFIG['max_content_length'] // (1024 * 1024)
        body = ValidationError(f'File exceeds the {limit_mb} MB upload limit').to_dict()
        return jsonify(body), 413

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        logger.error(f"Unhandled error on {request.method} {request.path}: {error}", exc_info=True)
        return jsonify(InternalError('Internal server error').to_dict()), 500

    @app.route('/api/health', methods=['GET'])
    def health_check():
        """Basic health check"""
        return jsonify({
            'status': 'healthy',
            'message': 'Welcome to the publication repository API',
            'timestamp': datetime.now().isoformat()
        })

    return app


if __name__ == '__main__':
    logging.basicConfig(level=LOG_CONFIG['level'], format=LOG_CONFIG['format'])
    app = create_app()
    app.run(host=FLASK_CONFIG['host'], port=FLASK_CONFIG['port'], debug=FLASK_CONFIG['debug'])
