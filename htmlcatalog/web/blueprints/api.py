"""API blueprint for REST endpoints."""

from pathlib import Path

from flask import Blueprint, Response, current_app, jsonify, request

from ...core.exceptions import BlobStorageError, CatalogError, NotFoundError, ValidationError
from ...core.models import ENTITY_TYPES, EntityKind, SearchFilters, entity_to_dict
from ...core.scanner import HTML_EXTENSIONS

api_bp = Blueprint('api', __name__)

ENTITY_COLLECTIONS = '<any(tags, models, categories):collection>'

MAX_PAGE_SIZE = 1000


def _extension(name):
    return current_app.extensions['htmlcatalog'][name]


def get_store():
    return _extension('store')


def get_blobs():
    """Content storage; uploads and downloads need one configured."""
    blobs = _extension('blobs')
    if blobs is None:
        raise BlobStorageError("No content storage configured")
    return blobs


def get_json_body():
    """
    Parse the JSON request body.

    Raises:
        ValidationError: If the body is missing or not a JSON object
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def file_to_json(record):
    return record.to_dict()


def entity_to_json(kind, entity, stats=None):
    data = entity_to_dict(entity)
    stats = stats or get_store().get_stats()
    data['usage_count'] = stats.usage(kind).get(entity.id, 0)
    return data


def entity_fields(kind, data, required_name=False):
    """
    Check a JSON body against the fields an entity accepts.

    Raises:
        ValidationError: On unknown fields or a missing required name
    """
    allowed = set(ENTITY_TYPES[kind].EDITABLE_FIELDS) | {'name'}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValidationError(f"Unknown {kind.value} fields: {', '.join(unknown)}")
    if required_name and 'name' not in data:
        raise ValidationError("Missing required fields: name")
    return dict(data)


def parse_search_args():
    """Build SearchFilters from query parameters."""
    limit = request.args.get('limit', current_app.config['DEFAULT_PAGE_SIZE'], type=int)
    offset = request.args.get('offset', 0, type=int)

    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError("Offset must be non-negative")

    text = request.args.get('text') or request.args.get('query') or ''
    return SearchFilters(
        text=text.strip() or None,
        category=request.args.get('category') or None,
        tags=[tag for tag in request.args.getlist('tags') if tag] or None,
        model=request.args.get('model') or None,
        limit=limit,
        offset=offset,
    )


# ----------------------------------------------------------------------
# Files

@api_bp.route('/files', methods=['GET'])
def get_files():
    """
    Search active files.

    Query parameters:
    - text: Keywords, all of which must match; ``*`` and ``?`` are wildcards
    - category: Category id
    - tags: Tag id, repeatable; a file needs any one of them
    - model: Model id
    - limit: Number of results to return (default: configured page size)
    - offset: Number of results to skip (default: 0)
    """
    store = get_store()
    filters = parse_search_args()
    files, total = store.search_page(filters)

    return jsonify({
        'files': [file_to_json(record) for record in files],
        'count': len(files),
        'offset': filters.offset,
        'limit': filters.limit,
        'total': total,
    })


@api_bp.route('/files/<file_id>', methods=['GET'])
def get_file(file_id):
    """Open a file record; counts as an access."""
    return jsonify(file_to_json(get_store().get_file(file_id)))


@api_bp.route('/files/<file_id>/content', methods=['GET'])
def get_file_content(file_id):
    """Serve the stored HTML document of an active file."""
    record = get_store().peek_file(file_id)
    blobs = get_blobs()
    if not blobs.exists(record.storage_ref):
        raise NotFoundError("content", file_id)
    return Response(blobs.fetch(record.storage_ref), mimetype='text/html')


@api_bp.route('/files', methods=['POST'])
def create_file():
    """
    Register a file.

    Either a multipart upload with the document in ``file`` and metadata
    in form fields (``tags`` repeatable), or a JSON body referencing
    already stored content through ``storage_ref``.
    """
    store = get_store()

    if 'file' in request.files:
        upload = request.files['file']
        filename = Path(upload.filename or '').name
        if not filename:
            raise ValidationError("Uploaded file has no name")
        if Path(filename).suffix.lower() not in HTML_EXTENSIONS:
            raise ValidationError("Only .html and .htm files can be uploaded")

        meta = {
            key: value for key, value in request.form.items()
            if key != 'tags'
        }
        meta['tags'] = [tag for tag in request.form.getlist('tags') if tag]
        meta['original_name'] = filename

        blobs = get_blobs()
        ref = blobs.store(upload.read())
        try:
            record = store.create_file(meta, ref)
        except CatalogError:
            blobs.delete(ref)
            raise
    else:
        meta = dict(get_json_body())
        ref = meta.pop('storage_ref', None)
        if not ref:
            raise ValidationError("Either a 'file' upload or a 'storage_ref' is required")
        blobs = _extension('blobs')
        if blobs is not None and not blobs.exists(ref):
            raise ValidationError(f"Unknown storage reference: {ref}")
        record = store.create_file(meta, ref)

    current_app.logger.info(f"Created file {record.id} ({record.original_name})")
    return jsonify(file_to_json(record)), 201


@api_bp.route('/files/<file_id>', methods=['PATCH'])
def update_file(file_id):
    record = get_store().update_file(file_id, get_json_body())
    return jsonify(file_to_json(record))


@api_bp.route('/files/<file_id>', methods=['DELETE'])
def delete_file(file_id):
    """Soft-delete a file; its content is kept."""
    record = get_store().soft_delete_file(file_id)
    return jsonify({'message': 'File deleted successfully', 'file': file_to_json(record)})


# ----------------------------------------------------------------------
# Tags, models, categories

@api_bp.route(f'/{ENTITY_COLLECTIONS}', methods=['GET'])
def list_entities(collection):
    kind = EntityKind.from_plural(collection)
    store = get_store()
    stats = store.get_stats()
    return jsonify({
        collection: [entity_to_json(kind, entity, stats) for entity in store.list_entities(kind)]
    })


@api_bp.route(f'/{ENTITY_COLLECTIONS}', methods=['POST'])
def create_entity(collection):
    """Create a tag, model or category from a JSON body with ``name`` and optional fields."""
    kind = EntityKind.from_plural(collection)
    data = entity_fields(kind, get_json_body(), required_name=True)
    name = data.pop('name')

    entity = get_store().create_entity(kind, name, **data)
    return jsonify(entity_to_json(kind, entity)), 201


@api_bp.route(f'/{ENTITY_COLLECTIONS}/<entity_id>', methods=['PATCH'])
def update_entity(collection, entity_id):
    """Rename and/or edit an entity; ``name`` goes through the uniqueness check."""
    kind = EntityKind.from_plural(collection)
    entity = get_store().update_entity(kind, entity_id, **entity_fields(kind, get_json_body()))
    return jsonify(entity_to_json(kind, entity))


@api_bp.route(f'/{ENTITY_COLLECTIONS}/<entity_id>', methods=['DELETE'])
def delete_entity(collection, entity_id):
    """Delete an entity no active file references; 409 with the usage count otherwise."""
    kind = EntityKind.from_plural(collection)
    entity = get_store().delete_entity(kind, entity_id)
    return jsonify({'message': f'{kind.value.capitalize()} deleted successfully', kind.value: entity_to_dict(entity)})


# ----------------------------------------------------------------------
# Stats and health

@api_bp.route('/stats', methods=['GET'])
def get_stats():
    return jsonify(get_store().get_stats().to_dict())


@api_bp.route('/health', methods=['GET'])
def health_check():
    """Report the storage backend and catalog size."""
    store = get_store()
    stats = store.get_stats()
    return jsonify({
        'status': 'healthy',
        'backend': store.backend.describe(),
        'total_files': stats.total_files,
        'computed_at': stats.computed_at.isoformat(),
    })
