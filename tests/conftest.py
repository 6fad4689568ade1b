import pytest
from decimal import Decimal

from pos import create_app
from pos.database import get_session, create_tables, drop_tables
from pos.models import Product, PromoCode, PromoCodeType, Customer, TaxRate
from pos.services import cart_service


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(scope='function')
def app_context(app):
    with app.app_context():
        yield app


@pytest.fixture(scope='function')
def client(app, session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app_context):
    """Fresh in-memory database per test."""
    create_tables()
    session = get_session()
    yield session
    session.rollback()
    session.remove()
    drop_tables()


@pytest.fixture(scope='function')
def tax_rate(session):
    """Default 20% tax rate."""
    rate = TaxRate(name='TVA 20%', rate=Decimal('20.00'), is_default=True, active=True)
    session.add(rate)
    session.commit()
    return rate


@pytest.fixture(scope='function')
def make_product(session):
    """Factory for committed products."""
    def _make(name='Product', price='100.00', stock=10, **kwargs):
        product = Product(
            name=name,
            price=Decimal(price),
            cost=Decimal(kwargs.pop('cost', '0')),
            stock=stock,
            active=kwargs.pop('active', True),
            **kwargs
        )
        session.add(product)
        session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_promo(session):
    """Factory for committed promo codes."""
    def _make(code, promo_type=PromoCodeType.PERCENTAGE, value='10', min_amount='0', **kwargs):
        promo = PromoCode(
            code=code,
            type=promo_type,
            value=Decimal(value),
            min_amount=Decimal(min_amount),
            active=kwargs.pop('active', True),
            **kwargs
        )
        session.add(promo)
        session.commit()
        return promo
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Test product: price 100.00, stock 10."""
    return make_product(name='Riz 5kg', price='100.00', stock=10, sku='RIZ-5KG', barcode='6001234500011')


@pytest.fixture(scope='function')
def product2(make_product):
    """Second product: price 50.00, stock 5."""
    return make_product(name='Huile 1L', price='50.00', stock=5, sku='HUI-1L')


@pytest.fixture(scope='function')
def welcome10(make_promo):
    return make_promo('WELCOME10', value='10')


@pytest.fixture(scope='function')
def loyalty_promo(make_promo):
    return make_promo('FIDELITE20', value='20')


@pytest.fixture(scope='function')
def customer(session):
    """Customer with a loyalty card."""
    customer = Customer(name='Awa Diallo', phone='770000001', loyalty_card='LOY001', active=True)
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture(scope='function')
def cart():
    return cart_service.new_cart()
