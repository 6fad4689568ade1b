"""
Tests for manual stock adjustments.
"""

import pytest

from pos.exceptions import BusinessLogicError, NotFoundError
from pos.models import Product, StockMove, StockMoveType, StockReferenceType
from pos.services import inventory_service


def _stock(session, product_id):
    return session.query(Product.stock).filter(Product.id == product_id).scalar()


class TestAdjustStock:

    def test_add(self, session, product):
        result = inventory_service.adjust_stock(session, product.id, 'add', 5, 'RECEIVING')

        assert result == {'product_id': product.id, 'previous_stock': 10, 'new_stock': 15, 'difference': 5}
        assert _stock(session, product.id) == 15

    def test_remove_floors_at_zero(self, session, make_product):
        low = make_product(name='Sucre', stock=3)

        result = inventory_service.adjust_stock(session, low.id, 'remove', 5, 'LOSS')

        assert result['new_stock'] == 0
        assert result['difference'] == -3
        assert _stock(session, low.id) == 0

    def test_set(self, session, product):
        result = inventory_service.adjust_stock(session, product.id, 'set', 42, 'physical_count', 'Inventario anual')

        assert result['new_stock'] == 42
        move = session.query(StockMove).one()
        assert move.type == StockMoveType.ADJUST
        assert move.reference_type == StockReferenceType.MANUAL
        assert move.reason == 'PHYSICAL_COUNT'
        assert (move.previous_qty, move.new_qty, move.qty) == (10, 42, 32)
        assert move.notes == 'Inventario anual'

    def test_set_to_zero(self, session, product):
        assert inventory_service.adjust_stock(session, product.id, 'set', 0, 'CORRECTION')['new_stock'] == 0

    def test_set_negative_rejected(self, session, product):
        with pytest.raises(BusinessLogicError):
            inventory_service.adjust_stock(session, product.id, 'set', -1, 'CORRECTION')
        assert _stock(session, product.id) == 10

    def test_invalid_reason(self, session, product):
        with pytest.raises(BusinessLogicError):
            inventory_service.adjust_stock(session, product.id, 'add', 1, 'GIFT')
        assert session.query(StockMove).count() == 0

    def test_invalid_type(self, session, product):
        with pytest.raises(BusinessLogicError):
            inventory_service.adjust_stock(session, product.id, 'multiply', 2, 'OTHER')

    def test_unknown_product(self, session):
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(session, 999, 'add', 1, 'OTHER')


class TestBulkAdjust:

    def test_failures_do_not_stop_others(self, session, product, product2):
        results = inventory_service.bulk_adjust_stock(session, [
            {'product_id': product.id, 'adjustment_type': 'add', 'quantity': 2, 'reason': 'RECEIVING'},
            {'product_id': 999, 'adjustment_type': 'add', 'quantity': 2, 'reason': 'RECEIVING'},
            {'product_id': product2.id, 'adjustment_type': 'remove', 'quantity': 1, 'reason': 'DEFECT'},
        ])

        assert [r['success'] for r in results] == [True, False, True]
        assert results[1]['error'] == 'Producto no encontrado'
        assert _stock(session, product.id) == 12
        assert _stock(session, product2.id) == 4


class TestQueries:

    def test_list_stock_moves_by_product(self, session, product, product2):
        inventory_service.adjust_stock(session, product.id, 'add', 1, 'OTHER')
        inventory_service.adjust_stock(session, product2.id, 'add', 1, 'OTHER')

        moves = inventory_service.list_stock_moves(session, product_id=product.id)

        assert [m.product_id for m in moves] == [product.id]

    def test_low_stock_products(self, session, make_product):
        make_product(name='Plenty', stock=100, min_stock=5)
        below_min = make_product(name='Below min', stock=20, min_stock=25)
        below_threshold = make_product(name='Below threshold', stock=2)

        low = inventory_service.get_low_stock_products(session, threshold=5)

        assert [p.id for p in low] == [below_threshold.id, below_min.id]
