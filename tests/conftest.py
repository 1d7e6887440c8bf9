import pytest
from io import BytesIO
from openpyxl import Workbook

from stockroom import create_app
from stockroom.database import Base, create_tables, get_engine, get_session
from stockroom.models import Credential, Product, Sale


IMPORT_HEADER = ['name', 'product_no', 'description', 'total_in_store', 'company']


@pytest.fixture(scope='function')
def app():
    """Create application instance with a fresh in-memory database."""
    app = create_app('config.TestingConfig')
    with app.app_context():
        create_tables()
    yield app
    get_session().remove()
    Base.metadata.drop_all(bind=get_engine())


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session shared with the request handlers."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def credential(session):
    """Login row for alice."""
    cred = Credential(username='alice', password='secret')
    session.add(cred)
    session.commit()
    return cred


@pytest.fixture(scope='function')
def product(session):
    """A product with 10 units in store."""
    product = Product(
        name='Tracklight',
        product_no='SL-001',
        description='45W',
        company='saiwin lights',
        total_in_store=10
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def other_product(session):
    product = Product(
        name='Downlight',
        product_no='PL-002',
        description='12W',
        company='prana lights',
        total_in_store=4
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def sale(session, product):
    sale = Sale(
        product_id=product.id,
        name=product.name,
        description=product.description,
        customer_name='Ravi',
        mob='9876543210',
        location='Kochi',
        color='white',
        quantity=2,
        type='sold',
        created_by='alice'
    )
    session.add(sale)
    session.commit()
    return sale


@pytest.fixture(scope='function')
def authenticated_client(client, credential):
    """Client carrying alice's auth cookie."""
    client.set_cookie('auth-demo', credential.username)
    return client


@pytest.fixture
def make_workbook():
    """Build an .xlsx in memory from a list of row lists."""
    def _make(rows, header=None):
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(header or IMPORT_HEADER)
        for row in rows:
            sheet.append(row)
        buffer = BytesIO()
        workbook.save(buffer)
        buffer.seek(0)
        return buffer
    return _make


@pytest.fixture
def make_xls_workbook():
    """Build a legacy binary .xls in memory from a list of row lists."""
    import xlwt

    def _make(rows, header=None):
        workbook = xlwt.Workbook()
        sheet = workbook.add_sheet('Sheet1')
        for row_index, values in enumerate([header or IMPORT_HEADER] + list(rows)):
            for col_index, value in enumerate(values):
                if value is not None:
                    sheet.write(row_index, col_index, value)
        buffer = BytesIO()
        workbook.save(buffer)
        buffer.seek(0)
        return buffer
    return _make


@pytest.fixture
def fail_stock_updates(session):
    """Make the store reject any write to products.total_in_store."""
    from sqlalchemy import text
    session.execute(text(
        "CREATE TRIGGER reject_stock_update BEFORE UPDATE OF total_in_store ON products "
        "BEGIN SELECT RAISE(ABORT, 'stock update rejected'); END"
    ))
    session.commit()
    yield
    session.rollback()
