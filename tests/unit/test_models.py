"""
Unit tests for SQLAlchemy models.
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from pos.models import (
    Product, PromoCode, PromoCodeType, Customer, TaxRate, SaleItem,
    PaymentMethod, normalize_payment_method
)


class TestProductModel:
    """Tests for Product model."""

    def test_create_product(self, session):
        product = Product(name='Sucre 1kg', price=Decimal('900.00'), stock=12, sku='SUC-1KG')
        session.add(product)
        session.commit()

        assert product.id is not None
        assert product.active is True
        assert product.to_dict()['price'] == '900.00'

    def test_product_sku_unique(self, session, product):
        session.add(Product(name='Duplicate', price=Decimal('1.00'), sku=product.sku))

        with pytest.raises(IntegrityError):
            session.commit()

    def test_stock_cannot_be_negative(self, session, product):
        product.stock = -1

        with pytest.raises(IntegrityError):
            session.commit()


class TestPromoCodeModel:
    """Tests for PromoCode validity helpers."""

    def test_validity_window(self, session):
        now = datetime(2026, 6, 15, 12, 0)
        promo = PromoCode(
            code='SUMMER',
            type=PromoCodeType.PERCENTAGE,
            value=Decimal('15'),
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=1)
        )

        assert promo.is_started(now) is True
        assert promo.is_expired(now) is False
        assert promo.is_expired(now + timedelta(days=2)) is True
        assert promo.is_started(now - timedelta(days=2)) is False

    def test_open_ended_window(self):
        promo = PromoCode(code='ALWAYS', type=PromoCodeType.FIXED, value=Decimal('5'))

        assert promo.is_started(datetime(2000, 1, 1)) is True
        assert promo.is_expired(datetime(2100, 1, 1)) is False

    def test_usage_exhausted(self):
        promo = PromoCode(code='ONCE', type=PromoCodeType.FIXED, value=Decimal('5'), max_uses=1, used_count=1)
        unlimited = PromoCode(code='MANY', type=PromoCodeType.FIXED, value=Decimal('5'), max_uses=None, used_count=500)

        assert promo.usage_exhausted() is True
        assert unlimited.usage_exhausted() is False

    def test_type_stored_as_lowercase_value(self, session, make_promo):
        promo = make_promo('FLAT', promo_type=PromoCodeType.FIXED, value='5000')
        session.expire_all()

        reloaded = session.query(PromoCode).filter(PromoCode.code == 'FLAT').one()
        assert reloaded.type == PromoCodeType.FIXED
        assert reloaded.to_dict()['type'] == 'fixed'
        assert promo.id == reloaded.id


class TestCustomerModel:

    def test_loyalty_card_unique(self, session, customer):
        session.add(Customer(name='Other', loyalty_card=customer.loyalty_card))

        with pytest.raises(IntegrityError):
            session.commit()


class TestTaxRateModel:

    def test_fraction(self):
        assert TaxRate(name='TVA', rate=Decimal('18.00')).fraction == Decimal('0.18')


class TestSaleItemModel:

    def test_returnable_quantity(self):
        item = SaleItem(quantity=5, returned_quantity=2)

        assert item.returnable_quantity == 3


class TestPaymentMethod:

    def test_normalize_is_case_insensitive(self):
        assert normalize_payment_method('mobile_money') == PaymentMethod.MOBILE_MONEY
        assert normalize_payment_method(' Cash ') == PaymentMethod.CASH

    def test_unknown_method_raises(self):
        with pytest.raises(ValueError):
            normalize_payment_method('BITCOIN')

    def test_empty_method_raises(self):
        with pytest.raises(ValueError):
            normalize_payment_method('')
