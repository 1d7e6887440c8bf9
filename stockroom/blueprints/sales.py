"""Sales blueprint - record stock transactions and view/export sales."""
import logging
from typing import Union
from flask import Blueprint, render_template, request, flash, current_app, g, jsonify, send_file, Response
from stockroom.database import get_session
from stockroom.exceptions import StockroomError, NotFoundError, PartialCommitError
from stockroom.services import product_service, export_service
from stockroom.services.sale_service import SaleRecorder, SaleDraft, TransactionKind
from stockroom.blueprints.metrics import stock_transactions_total

logger = logging.getLogger(__name__)

sales_bp = Blueprint('sales', __name__)


def _payload():
    """Form fields, or the JSON body for API callers."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form


def _recorder(session, products) -> SaleRecorder:
    return SaleRecorder(
        session=session,
        products=products,
        atomic=current_app.config.get('SALE_ATOMIC_COMMIT', True),
    )


def _seen_stock(data):
    try:
        return int(data.get('seen_stock'))
    except (TypeError, ValueError):
        return None


def _render_form(recorder: SaleRecorder, status: int = 200):
    return render_template(
        'sales/record.html',
        product=recorder.selected,
        draft=recorder.draft,
        error=recorder.error,
        kinds=list(TransactionKind),
    ), status


@sales_bp.route('/sales/record', methods=['GET'])
def record_index() -> str:
    """Product picker for recording a transaction."""
    products = product_service.list_products(get_session())
    return render_template('sales/picker.html', products=products)


@sales_bp.route('/sales/record/<product_id>', methods=['GET'])
def record_form(product_id: str) -> Union[str, Response]:
    """Open an empty draft for one product."""
    session = get_session()
    recorder = _recorder(session, product_service.list_products(session))
    recorder.select(product_id)
    return _render_form(recorder)


@sales_bp.route('/sales/record/<product_id>', methods=['POST'])
def record_submit(product_id: str) -> Union[str, Response]:
    """
    Validate and commit one transaction.

    The stock figure the user was shown travels with the form (seen_stock);
    validation and the new total are based on it.
    """
    session = get_session()
    data = _payload()
    products = product_service.list_products(session)
    recorder = _recorder(session, products)
    recorder.select(product_id, seen_stock=_seen_stock(data))

    try:
        draft = SaleDraft.from_form(data)
        new_stock = recorder.submit(
            draft,
            created_by=data.get('created_by'),
            session_username=g.get('username'),
        )
    except StockroomError as e:
        recorder.error = e.message
        outcome = 'partial' if isinstance(e, PartialCommitError) else 'rejected'
        kind = data.get('kind') or TransactionKind.INCOMING.value
        if kind not in {k.value for k in TransactionKind}:
            kind = 'unknown'
        stock_transactions_total.labels(type=kind, outcome=outcome).inc()
        if request.is_json:
            return jsonify(e.to_dict()), e.status_code
        return _render_form(recorder, e.status_code)

    stock_transactions_total.labels(type=draft.kind.value, outcome='recorded').inc()

    if request.is_json:
        return jsonify({'status': 'ok', 'product_id': product_id, 'total_in_store': new_stock}), 201

    flash('Transaction saved.', 'success')
    return render_template('sales/picker.html', products=products)


# ============================================================================
# Sales viewer / export
# ============================================================================

def _product_or_none(session, product_id: str):
    try:
        return product_service.get_product(session, product_id)
    except NotFoundError:
        return None


@sales_bp.route('/products/<product_id>/sales', methods=['GET'])
def list_sales(product_id: str) -> str:
    session = get_session()
    sales = export_service.list_sales_for_product(session, product_id)
    return render_template(
        'sales/list.html',
        product=_product_or_none(session, product_id),
        product_id=product_id,
        sales=sales,
        missing_user=export_service.MISSING_USER,
    )


@sales_bp.route('/products/<product_id>/sales.xlsx', methods=['GET'])
def export_sales_xlsx(product_id: str) -> Response:
    sales = export_service.list_sales_for_product(get_session(), product_id)
    buffer = export_service.sales_to_xlsx(sales)
    return send_file(
        buffer,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        as_attachment=True,
        download_name='sales.xlsx'
    )


@sales_bp.route('/products/<product_id>/sales.pdf', methods=['GET'])
def export_sales_pdf(product_id: str) -> Response:
    session = get_session()
    sales = export_service.list_sales_for_product(session, product_id)
    product = _product_or_none(session, product_id)
    buffer = export_service.sales_to_pdf(sales, title=f'Sales - {product.name}' if product else None)
    return send_file(
        buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name='sales.pdf'
    )
