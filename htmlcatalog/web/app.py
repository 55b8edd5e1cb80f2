"""Flask web application for the HTML Catalog."""

import logging
from typing import Optional

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException

from .blueprints.api import api_bp
from ..core.blobs import FileSystemBlobStorage
from ..core.config import WebConfig
from ..core.exceptions import (
    BlobStorageError, CatalogError, ConfigurationError, DuplicateNameError,
    EntityInUseError, NotFoundError, PersistenceError, ScanError, ValidationError
)
from ..core.store import CatalogStore


EXTENSION_KEY = "htmlcatalog"

# Checked in order; subclasses before their bases
ERROR_RESPONSES = (
    (NotFoundError, "Not found", 404),
    (DuplicateNameError, "Duplicate name", 409),
    (EntityInUseError, "Entity in use", 409),
    (ValidationError, "Validation error", 400),
    (ScanError, "Scan error", 400),
    (PersistenceError, "Persistence error", 503),
    (BlobStorageError, "Content storage error", 503),
    (ConfigurationError, "Configuration error", 500),
)


def error_response(error: CatalogError):
    """
    Build the JSON body and status code for a catalog error.

    Returns:
        Tuple of (response_dict, status_code)
    """
    for error_type, title, status in ERROR_RESPONSES:
        if isinstance(error, error_type):
            break
    else:
        title, status = "Application error", 400

    body = {'error': title, 'message': str(error)}
    if isinstance(error, EntityInUseError):
        body['count'] = error.count
    return body, status


def create_app(store: CatalogStore, blobs: Optional[FileSystemBlobStorage] = None,
               config: Optional[WebConfig] = None):
    """
    Create and configure the Flask application.

    Args:
        store: Loaded catalog the API serves
        blobs: Content storage for uploads and downloads
        config: Web settings

    Returns:
        Configured Flask application
    """
    config = config or WebConfig()
    app = Flask(__name__)

    app.config.update({
        'SECRET_KEY': config.secret_key,
        'JSON_SORT_KEYS': False,
        'MAX_CONTENT_LENGTH': config.max_content_length,
        'DEFAULT_PAGE_SIZE': config.default_page_size,
    })
    if config.debug:
        app.config['DEBUG'] = True

    app.extensions[EXTENSION_KEY] = {
        'store': store,
        'blobs': blobs,
    }

    app.register_blueprint(api_bp, url_prefix='/api')

    @app.errorhandler(CatalogError)
    def catalog_error(error):
        body, status = error_response(error)
        if status >= 500:
            app.logger.error(f'{body["error"]}: {error}', exc_info=True)
        else:
            app.logger.info(f'{request.method} {request.path} rejected: {error}')
        return jsonify(body), status

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({
            'error': error.name,
            'message': error.description
        }), error.code

    @app.errorhandler(Exception)
    def unexpected_error(error):
        app.logger.error(f'Unexpected Error: {error}', exc_info=True)
        return jsonify({
            'error': 'Unexpected error',
            'message': 'An unexpected error occurred'
        }), 500

    logging.getLogger(__name__).info('HTML Catalog web application created')
    return app
