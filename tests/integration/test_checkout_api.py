"""
Integration tests: checkout flow through the JSON API.
"""

from decimal import Decimal

from pos.models import Product, Sale


class TestCartEndpoints:

    def test_add_by_barcode_and_view_totals(self, client, product):
        product_id = product.id
        response = client.post('/sales/cart/add', json={'barcode': '6001234500011', 'qty': 2})

        assert response.status_code == 200
        data = response.get_json()
        assert data['totals']['subtotal'] == '200.00'
        assert data['totals']['total'] == '240.00'

        response = client.get('/sales/cart')
        assert list(response.get_json()['cart']['items'].keys()) == [str(product_id)]

    def test_add_beyond_stock_returns_409(self, client, product):
        product_id = product.id

        response = client.post('/sales/cart/add', json={'product_id': product_id, 'qty': 11})

        assert response.status_code == 409
        data = response.get_json()
        assert data['status'] == 'error'
        assert data['shortages'][0]['available'] == 10

    def test_promo_rejection_reason(self, client, product):
        client.post('/sales/cart/add', json={'product_id': product.id, 'qty': 1})

        response = client.post('/sales/cart/promo', json={'code': 'NOPE'})

        assert response.status_code == 400
        assert response.get_json()['reason'] == 'NOT_FOUND'

    def test_attach_customer_applies_loyalty(self, client, product, customer, loyalty_promo):
        customer_id = customer.id
        client.post('/sales/cart/add', json={'product_id': product.id, 'qty': 1})

        response = client.post('/sales/cart/customer', json={'customer_id': customer_id})

        data = response.get_json()
        assert data['loyalty_applied'] is True
        assert data['cart']['promo_codes'] == ['FIDELITE20']
        assert data['totals']['total'] == '96.00'


class TestCheckout:

    def test_full_checkout(self, client, session, product, welcome10):
        product_id = product.id
        client.post('/sales/cart/add', json={'product_id': product_id, 'qty': 1})
        client.post('/sales/cart/promo', json={'code': 'welcome10'})

        response = client.post('/sales/checkout', json={'payment_method': 'cash', 'notes': 'Mostrador'})

        assert response.status_code == 201
        sale = response.get_json()['sale']
        assert sale['final_amount'] == '108.00'
        assert sale['promo_codes'] == ['WELCOME10']
        assert sale['items'][0]['quantity'] == 1

        assert client.get('/sales/cart').get_json()['cart']['items'] == {}
        assert session.query(Product.stock).filter(Product.id == product_id).scalar() == 9

    def test_failed_checkout_keeps_cart(self, client, session, product):
        product_id = product.id
        client.post('/sales/cart/add', json={'product_id': product_id, 'qty': 5})
        session.query(Product).filter(Product.id == product_id).update({'stock': 2})
        session.commit()

        response = client.post('/sales/checkout', json={'payment_method': 'CASH'})

        assert response.status_code == 409
        assert session.query(Sale).count() == 0
        assert client.get('/sales/cart').get_json()['cart']['items'][str(product_id)]['qty'] == 5

    def test_invalid_payment_method(self, client, product):
        client.post('/sales/cart/add', json={'product_id': product.id, 'qty': 1})

        response = client.post('/sales/checkout', json={'payment_method': 'BARTER'})

        assert response.status_code == 400

    def test_cancel_and_return_endpoints(self, client, session, product):
        product_id = product.id
        client.post('/sales/cart/add', json={'product_id': product_id, 'qty': 3})
        sale = client.post('/sales/checkout', json={'payment_method': 'CARD'}).get_json()['sale']

        response = client.post(f"/sales/{sale['id']}/return", json={
            'items': [{'item_id': sale['items'][0]['id'], 'quantity': 1}],
            'reason': 'Defecto'
        })
        assert response.status_code == 200
        assert Decimal(response.get_json()['total_return_amount']) == Decimal('100.00')

        response = client.post(f"/sales/{sale['id']}/cancel")
        assert response.status_code == 200
        assert response.get_json()['sale']['status'] == 'CANCELLED'
        assert session.query(Product.stock).filter(Product.id == product_id).scalar() == 10


class TestOtherEndpoints:

    def test_inventory_adjust(self, client, product):
        response = client.post('/inventory/adjust', json={
            'product_id': product.id, 'adjustment_type': 'remove', 'quantity': 15, 'reason': 'LOSS'
        })

        assert response.status_code == 200
        assert response.get_json()['new_stock'] == 0

    def test_inventory_adjust_invalid_reason(self, client, product):
        response = client.post('/inventory/adjust', json={
            'product_id': product.id, 'adjustment_type': 'add', 'quantity': 1, 'reason': 'GIFT'
        })

        assert response.status_code == 400

    def test_validate_promo_endpoint(self, client, make_promo):
        make_promo('MIN50', value='10', min_amount='50')

        ok = client.post('/promocodes/validate', json={'code': 'min50', 'amount': '80'})
        below = client.post('/promocodes/validate', json={'code': 'MIN50', 'amount': '40'})

        assert ok.status_code == 200
        assert ok.get_json()['discount'] == '8.00'
        assert below.status_code == 400
        assert below.get_json()['reason'] == 'BELOW_MINIMUM'

    def test_create_customer_generates_card(self, client, session):
        response = client.post('/customers', json={'name': 'Fatou Ndiaye', 'phone': '770000009'})

        assert response.status_code == 201
        assert response.get_json()['customer']['loyalty_card'] == 'LOY001'
        assert client.get('/customers/next-loyalty-card').get_json()['loyalty_card'] == 'LOY002'

    def test_product_not_found(self, client, session):
        response = client.get('/products/barcode/000')

        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'

    def test_dashboard_summary(self, client, product):
        client.post('/sales/cart/add', json={'product_id': product.id, 'qty': 1})
        client.post('/sales/checkout', json={'payment_method': 'CASH'})

        data = client.get('/dashboard/summary').get_json()

        assert data['sales_count'] == 1
        assert data['revenue'] == '120.00'
        assert data['currency'] == 'FCFA'

    def test_metrics_endpoint(self, client, session):
        response = client.get('/metrics')

        assert response.status_code == 200
        assert b'http_requests_total' in response.data
