"""
Tests for tax rate resolution.
"""

import pytest
from decimal import Decimal

from pos.exceptions import BusinessLogicError, NotFoundError
from pos.services import product_service, tax_service


class TestResolveTaxRate:

    def test_config_fallback(self, session):
        assert tax_service.resolve_tax_rate(session) == Decimal('0.20')

    def test_default_row_wins(self, session):
        tax_service.create_tax_rate(session, 'TVA 18%', '18', is_default=True)

        assert tax_service.resolve_tax_rate(session) == Decimal('0.18')

    def test_new_default_replaces_previous(self, session, tax_rate):
        tax_service.create_tax_rate(session, 'Exonéré', '0', is_default=True)

        rates = tax_service.list_tax_rates(session)
        assert [r.name for r in rates if r.is_default] == ['Exonéré']
        assert tax_service.resolve_tax_rate(session) == Decimal('0')


class TestCreateTaxRate:

    @pytest.mark.parametrize('name,rate', [
        ('', '10'),
        ('Bad', 'abc'),
        ('Bad', '150'),
        ('Bad', '-1'),
    ])
    def test_invalid(self, session, name, rate):
        with pytest.raises(BusinessLogicError):
            tax_service.create_tax_rate(session, name, rate)


class TestProductTaxRate:

    def test_product_rate_and_fallback(self, session, make_product):
        reduced = tax_service.create_tax_rate(session, 'TVA 10%', '10')
        book = make_product('Livre', tax_rate_id=reduced.id)
        plain = make_product('Riz')

        assert tax_service.product_tax_rate(book) == Decimal('0.10')
        assert tax_service.product_tax_rate(plain) is None

    def test_create_product_with_unknown_rate(self, session):
        with pytest.raises(NotFoundError):
            product_service.create_product(session, {'name': 'Livre', 'price': '10', 'tax_rate_id': 999})
