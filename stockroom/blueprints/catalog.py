"""Catalog blueprint for products management."""
import logging
from io import BytesIO
from typing import Union
from flask import Blueprint, render_template, request, redirect, url_for, flash, current_app, g, jsonify, Response
from werkzeug.utils import secure_filename
from stockroom.database import get_session
from stockroom.exceptions import StockroomError, ValidationError, ImportParseError
from stockroom.services import product_service, import_service
from stockroom.blueprints.metrics import products_imported_total

logger = logging.getLogger(__name__)

catalog_bp = Blueprint('catalog', __name__)


def _companies():
    return tuple(current_app.config['COMPANIES'])


def _selected_company() -> str:
    return (request.values.get('company') or product_service.ALL_COMPANIES).strip().lower()


def _error_response(error: StockroomError, template: str, **context):
    """Render the originating page with the error, or JSON for API callers."""
    if request.is_json:
        return jsonify(error.to_dict()), error.status_code
    return render_template(
        template,
        error=error.message,
        error_field=getattr(error, 'field', None),
        companies=_companies(),
        **context
    ), error.status_code


def _payload():
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form


def _render_catalog(products, template='products/list.html', status=200):
    company = _selected_company()
    return render_template(
        template,
        products=product_service.filter_by_company(products, company),
        selected_company=company,
        companies=_companies(),
    ), status


@catalog_bp.route('/')
def list_products() -> Union[str, Response]:
    """Catalog page: product cards with a company filter."""
    session = get_session()
    try:
        products = product_service.list_products(session)
    except StockroomError as e:
        flash(f'Error loading products: {e.message}', 'danger')
        products = []
    return _render_catalog(products)


@catalog_bp.route('/products/<product_id>/delete', methods=['POST'])
def delete_product(product_id: str) -> Union[str, Response]:
    """
    Delete a product permanently.

    The form must carry confirm=yes (set by the confirmation dialog).
    Sales that reference the product are kept.
    """
    session = get_session()
    template = 'products/edit_list.html' if request.form.get('surface') == 'editor' else 'products/list.html'

    products = product_service.list_products(session)

    if request.form.get('confirm') != 'yes':
        flash('Deletion was not confirmed.', 'warning')
        return _render_catalog(products, template, 400)

    try:
        product = product_service.get_product(session, product_id)
        product_name = product.name
        product_service.delete_product(session, product_id)
    except StockroomError as e:
        flash(e.message, 'danger')
        return _render_catalog(products, template, e.status_code)

    products = product_service.remove_product_from_list(products, product_id)
    flash(f'Product "{product_name}" removed.', 'success')
    return _render_catalog(products, template)


# ============================================================================
# Create (single + bulk import)
# ============================================================================

def _new_product_context():
    draft = import_service.get_held_import(get_session(), g.username)
    return {'held_import': draft, 'form': {}}


@catalog_bp.route('/products/new', methods=['GET'])
def new_product() -> str:
    return render_template('products/new.html', companies=_companies(), **_new_product_context())


@catalog_bp.route('/products/new', methods=['POST'])
def create_product() -> Union[str, Response]:
    """Validate the single-product form and insert one row."""
    session = get_session()
    context = _new_product_context()
    context['form'] = _payload()

    try:
        data = product_service.validate_new_product(context['form'], _companies())
        product = product_service.create_product(session, data)
    except StockroomError as e:
        return _error_response(e, 'products/new.html', **context)

    if request.is_json:
        return jsonify({'status': 'ok', 'id': product.id}), 201

    flash('Product added.', 'success')
    context['form'] = {}
    return render_template('products/new.html', companies=_companies(), **context)


def _read_upload():
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        raise ValidationError('Choose a spreadsheet to upload.', field='file')

    filename = secure_filename(upload.filename)
    extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    if extension not in current_app.config['ALLOWED_IMPORT_EXTENSIONS']:
        raise ValidationError('Only .xlsx and .xls files are accepted.', field='file')

    data = upload.read()
    if not data:
        raise ImportParseError('Could not read file: the file is empty.')
    if len(data) > current_app.config['MAX_UPLOAD_SIZE']:
        raise ValidationError('The file is too large.', field='file')
    return filename, extension, BytesIO(data)


@catalog_bp.route('/products/import', methods=['POST'])
def upload_import() -> Union[str, Response]:
    """Parse an uploaded spreadsheet and hold the rows until confirmed."""
    session = get_session()

    try:
        filename, extension, stream = _read_upload()
        rows = import_service.parse_product_workbook(
            stream, _companies(), current_app.config['IMPORT_HEADER_ROW_OFFSET'], extension
        )
    except StockroomError as e:
        # Nothing from a rejected file is kept
        import_service.discard_import(session, g.username)
        logger.info(f"Import rejected for {g.username!r}: {e.message}")
        return _error_response(e, 'products/new.html', held_import=None, form={})

    try:
        draft = import_service.hold_import(session, g.username, rows, filename)
    except StockroomError as e:
        return _error_response(e, 'products/new.html', held_import=None, form={})

    flash(f'Loaded {draft.row_count} valid row(s). Click "Upload" to save.', 'success')
    return render_template('products/new.html', companies=_companies(), held_import=draft, form={})


@catalog_bp.route('/products/import/commit', methods=['POST'])
def commit_import() -> Union[str, Response]:
    """Insert every held row in one batch."""
    session = get_session()

    try:
        count = import_service.commit_import(session, g.username)
    except StockroomError as e:
        return _error_response(e, 'products/new.html', held_import=None, form={})

    products_imported_total.inc(count)
    flash(f'All {count} product(s) added!', 'success')
    return redirect(url_for('catalog.new_product'))


@catalog_bp.route('/products/import/discard', methods=['POST'])
def discard_import() -> Response:
    import_service.discard_import(get_session(), g.username)
    flash('Loaded rows discarded.', 'info')
    return redirect(url_for('catalog.new_product'))


# ============================================================================
# Edit
# ============================================================================

@catalog_bp.route('/products/edit', methods=['GET'])
def edit_list() -> str:
    products = product_service.list_products(get_session())
    return _render_catalog(products, 'products/edit_list.html')


@catalog_bp.route('/products/<product_id>/edit', methods=['GET'])
def edit_product(product_id: str) -> Union[str, Response]:
    product = product_service.get_product(get_session(), product_id)
    return render_template('products/edit.html', product=product, form=product, companies=_companies())


@catalog_bp.route('/products/<product_id>/edit', methods=['POST'])
def update_product(product_id: str) -> Union[str, Response]:
    """Save name/product number/description/company and patch the loaded list."""
    session = get_session()
    products = product_service.list_products(session)
    product = product_service.get_product(session, product_id)

    try:
        data = product_service.validate_product_edit(_payload(), _companies())
        changes = product_service.update_product(session, product_id, data)
    except StockroomError as e:
        return _error_response(e, 'products/edit.html', product=product, form=_payload())

    if request.is_json:
        return jsonify({'status': 'ok', 'id': product_id, **changes})

    product_service.patch_product_in_list(products, product_id, changes)
    flash(f'Product "{changes["name"]}" updated.', 'success')
    return _render_catalog(products, 'products/edit_list.html')
