"""
Tests for the cart policy: items, promo codes, manual discount and loyalty.
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from pos.exceptions import BusinessLogicError, InsufficientStockError, PromoCodeError
from pos.models import PromoCodeType
from pos.services import cart_service
from pos.signals import promo_code_rejected


class TestCartItems:

    def test_add_merges_quantities(self, session, cart, product):
        cart_service.add_item(cart, product, 2)
        cart_service.add_item(cart, product, 3)

        assert cart['items'][str(product.id)]['qty'] == 5

    def test_add_beyond_stock_rejected(self, session, cart, product):
        cart_service.add_item(cart, product, 8)

        with pytest.raises(InsufficientStockError) as exc:
            cart_service.add_item(cart, product, 3)

        assert exc.value.shortages[0]['available'] == 10
        assert cart['items'][str(product.id)]['qty'] == 8

    @pytest.mark.parametrize('qty', [0, -1, '1.5', 'abc'])
    def test_invalid_quantity(self, session, cart, product, qty):
        with pytest.raises(BusinessLogicError):
            cart_service.add_item(cart, product, qty)
        assert cart['items'] == {}

    def test_inactive_product_rejected(self, session, cart, make_product):
        inactive = make_product(name='Old', active=False)

        with pytest.raises(BusinessLogicError):
            cart_service.add_item(cart, inactive, 1)

    def test_line_discount_and_totals(self, session, cart, product):
        cart_service.add_item(cart, product, 2)
        cart_service.update_item(cart, product, discount_type='percentage', discount_value='10')

        totals = cart_service.get_cart_totals(session, cart)

        assert totals['subtotal'] == Decimal('180.00')
        assert totals['total'] == Decimal('216.00')

    def test_update_unknown_item(self, session, cart, product):
        with pytest.raises(BusinessLogicError):
            cart_service.update_item(cart, product, qty=1)

    def test_remove_item(self, session, cart, product):
        cart_service.add_item(cart, product, 1)
        cart_service.remove_item(cart, product.id)

        assert cart['items'] == {}


class TestApplyPromoCode:

    def test_apply_valid_code(self, session, cart, product, welcome10):
        cart_service.add_item(cart, product, 1)

        cart_service.apply_promo_code(session, cart, 'welcome10')

        assert cart['promo_codes'] == ['WELCOME10']
        assert cart_service.get_cart_totals(session, cart)['total'] == Decimal('108.00')

    def test_duplicate_code_rejected(self, session, cart, product, welcome10):
        cart_service.add_item(cart, product, 1)
        cart_service.apply_promo_code(session, cart, 'WELCOME10')

        with pytest.raises(PromoCodeError) as exc:
            cart_service.apply_promo_code(session, cart, 'WELCOME10')

        assert exc.value.reason == PromoCodeError.DUPLICATE
        assert cart['promo_codes'] == ['WELCOME10']

    def test_limit_reached(self, session, cart, product, make_promo):
        for code in ('A1', 'A2', 'A3'):
            make_promo(code, value='5')
        cart_service.add_item(cart, product, 1)
        cart_service.apply_promo_code(session, cart, 'A1')
        cart_service.apply_promo_code(session, cart, 'A2')

        with pytest.raises(PromoCodeError) as exc:
            cart_service.apply_promo_code(session, cart, 'A3')

        assert exc.value.reason == PromoCodeError.LIMIT_REACHED
        assert cart['promo_codes'] == ['A1', 'A2']

    def test_below_minimum_rejected(self, session, cart, make_product, make_promo):
        cheap = make_product(name='Sucre', price='40.00', stock=5)
        make_promo('MIN50', value='10', min_amount='50')
        cart_service.add_item(cart, cheap, 1)

        with pytest.raises(PromoCodeError) as exc:
            cart_service.apply_promo_code(session, cart, 'MIN50')

        assert exc.value.reason == PromoCodeError.BELOW_MINIMUM
        assert exc.value.to_dict()['min_amount'] == '50.00'
        assert cart['promo_codes'] == []

    def test_unknown_code(self, session, cart, product):
        cart_service.add_item(cart, product, 1)

        with pytest.raises(PromoCodeError) as exc:
            cart_service.apply_promo_code(session, cart, 'NOPE')

        assert exc.value.reason == PromoCodeError.NOT_FOUND

    def test_expired_code(self, session, cart, product, make_promo):
        make_promo('OLD', valid_until=datetime.now() - timedelta(days=1))
        cart_service.add_item(cart, product, 1)

        with pytest.raises(PromoCodeError) as exc:
            cart_service.apply_promo_code(session, cart, 'OLD')

        assert exc.value.reason == PromoCodeError.EXPIRED

    def test_not_yet_valid_code(self, session, cart, product, make_promo):
        make_promo('SOON', valid_from=datetime.now() + timedelta(days=1))
        cart_service.add_item(cart, product, 1)

        with pytest.raises(PromoCodeError) as exc:
            cart_service.apply_promo_code(session, cart, 'SOON')

        assert exc.value.reason == PromoCodeError.NOT_YET_VALID

    def test_usage_limit(self, session, cart, product, make_promo):
        make_promo('USED', promo_type=PromoCodeType.FIXED, value='5', max_uses=3, used_count=3)
        cart_service.add_item(cart, product, 1)

        with pytest.raises(PromoCodeError) as exc:
            cart_service.apply_promo_code(session, cart, 'USED')

        assert exc.value.reason == PromoCodeError.USAGE_LIMIT

    def test_rejection_emits_signal(self, session, cart, product):
        received = []

        def receiver(code, **kwargs):
            received.append((code, kwargs['reason']))

        cart_service.add_item(cart, product, 1)
        with promo_code_rejected.connected_to(receiver):
            with pytest.raises(PromoCodeError):
                cart_service.apply_promo_code(session, cart, 'NOPE')

        assert received == [('NOPE', PromoCodeError.NOT_FOUND)]

    def test_remove_promo_code(self, session, cart, product, welcome10):
        cart_service.add_item(cart, product, 1)
        cart_service.apply_promo_code(session, cart, 'WELCOME10')

        cart_service.remove_promo_code(cart, 'welcome10')

        assert cart['promo_codes'] == []


class TestManualDiscount:

    def test_single_manual_discount_replaced(self, session, cart, product):
        cart_service.add_item(cart, product, 1)
        cart_service.set_manual_discount(cart, 'fixed', '10', 'Cliente habitual')
        cart_service.set_manual_discount(cart, 'percentage', '50')

        totals = cart_service.get_cart_totals(session, cart)

        assert totals['manual_discount'] == Decimal('50.00')
        assert totals['total'] == Decimal('60.00')

    @pytest.mark.parametrize('discount_type,value', [
        ('percentage', '101'),
        ('percentage', '0'),
        ('fixed', '-5'),
        ('bogus', '5'),
    ])
    def test_invalid_manual_discount(self, cart, discount_type, value):
        with pytest.raises(BusinessLogicError):
            cart_service.set_manual_discount(cart, discount_type, value)
        assert cart['manual_discount'] is None


class TestLoyalty:

    def test_loyalty_code_auto_applied_once(self, session, cart, product, customer, loyalty_promo):
        cart_service.add_item(cart, product, 1)

        first = cart_service.attach_customer(session, cart, customer.id)
        second = cart_service.attach_customer(session, cart, customer.id)

        assert first['loyalty_applied'] is True
        assert second['loyalty_applied'] is False
        assert cart['promo_codes'] == ['FIDELITE20']
        assert cart['customer_id'] == customer.id

    def test_customer_without_card(self, session, cart, product, loyalty_promo):
        from pos.models import Customer
        walk_in = Customer(name='Sin tarjeta')
        session.add(walk_in)
        session.commit()
        cart_service.add_item(cart, product, 1)

        result = cart_service.attach_customer(session, cart, walk_in.id)

        assert result['loyalty_applied'] is False
        assert cart['promo_codes'] == []

    def test_loyalty_failure_does_not_fail_selection(self, session, cart, product, customer):
        cart_service.add_item(cart, product, 1)

        result = cart_service.attach_customer(session, cart, customer.id)

        assert result['loyalty_applied'] is False
        assert result['loyalty_error']['reason'] == PromoCodeError.NOT_FOUND
        assert cart['customer_id'] == customer.id

    def test_detach_removes_loyalty_code(self, session, cart, product, customer, loyalty_promo, welcome10):
        cart_service.add_item(cart, product, 1)
        cart_service.apply_promo_code(session, cart, 'WELCOME10')
        cart_service.attach_customer(session, cart, customer.id)

        cart_service.detach_customer(cart)

        assert cart['promo_codes'] == ['WELCOME10']
        assert cart['customer_id'] is None
