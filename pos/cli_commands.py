"""
Flask CLI commands for POS setup.

Commands:
- flask init-db: Create all tables
- flask seed-demo: Load a default tax rate, sample products and promo codes
- flask create-promo: Create a promo code
"""

import click
from decimal import Decimal

from pos.database import create_tables, get_session
from pos.exceptions import BusinessLogicError
from pos.models import Product, PromoCode, TaxRate
from pos.services import promo_service, tax_service


DEMO_PRODUCTS = [
    {'sku': 'RIZ-5KG', 'barcode': '6001234500011', 'name': 'Riz parfumé 5kg', 'price': '4500.00', 'cost': '3800.00', 'stock': 40, 'min_stock': 10},
    {'sku': 'HUI-1L', 'barcode': '6001234500028', 'name': 'Huile végétale 1L', 'price': '1500.00', 'cost': '1150.00', 'stock': 60, 'min_stock': 15},
    {'sku': 'SUC-1KG', 'barcode': '6001234500035', 'name': 'Sucre 1kg', 'price': '900.00', 'cost': '700.00', 'stock': 8, 'min_stock': 12},
    {'sku': 'LAI-400', 'barcode': '6001234500042', 'name': 'Lait en poudre 400g', 'price': '2750.00', 'cost': '2200.00', 'stock': 25, 'min_stock': 5},
]

DEMO_PROMO_CODES = [
    {'code': 'WELCOME10', 'type': 'percentage', 'value': '10', 'min_amount': '0', 'description': 'Bienvenida 10%'},
    {'code': 'FIDELITE20', 'type': 'percentage', 'value': '20', 'min_amount': '0', 'description': 'Tarjeta de fidelidad'},
    {'code': 'FLAT5000', 'type': 'fixed', 'value': '5000', 'min_amount': '25000', 'description': '5000 de descuento desde 25000'},
]


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_tables()
        click.echo(click.style('✅ Tablas creadas', fg='green'))

    @app.cli.command('seed-demo')
    def seed_demo():
        """Load demo data (idempotent)."""
        db_session = get_session()

        if not db_session.query(TaxRate).filter(TaxRate.is_default == True).first():
            tax_service.create_tax_rate(db_session, 'TVA 20%', Decimal('20.00'), is_default=True)
            click.echo('   Tasa por defecto: TVA 20%')

        created = 0
        for data in DEMO_PRODUCTS:
            if db_session.query(Product).filter(Product.sku == data['sku']).first():
                continue
            db_session.add(Product(
                sku=data['sku'],
                barcode=data['barcode'],
                name=data['name'],
                price=Decimal(data['price']),
                cost=Decimal(data['cost']),
                stock=data['stock'],
                min_stock=data['min_stock'],
                active=True
            ))
            created += 1
        db_session.commit()
        click.echo(f'   Productos creados: {created}')

        for data in DEMO_PROMO_CODES:
            if db_session.query(PromoCode).filter(PromoCode.code == data['code']).first():
                continue
            promo_service.create_promo_code(db_session, data)
            click.echo(f"   Código creado: {data['code']}")

        click.echo(click.style('\n✅ Datos de demostración cargados', fg='green', bold=True))

    @app.cli.command('create-promo')
    @click.option('--code', prompt=True, help='Promo code (stored upper case)')
    @click.option('--type', 'promo_type', type=click.Choice(['percentage', 'fixed']), prompt=True)
    @click.option('--value', prompt=True, help='Percentage (0-100] or fixed amount')
    @click.option('--min-amount', default='0', show_default=True)
    @click.option('--max-uses', type=int, default=None, help='Leave empty for unlimited')
    @click.option('--valid-until', default=None, help='ISO date, e.g. 2026-12-31T23:59:59')
    def create_promo(code, promo_type, value, min_amount, max_uses, valid_until):
        """Create a promo code."""
        try:
            promo = promo_service.create_promo_code(get_session(), {
                'code': code,
                'type': promo_type,
                'value': value,
                'min_amount': min_amount,
                'max_uses': max_uses,
                'valid_until': valid_until,
            })
        except BusinessLogicError as e:
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style(f'\n✅ Código {promo.code} creado', fg='green', bold=True))
        click.echo(f'   Tipo: {promo.type.value}  Valor: {promo.value}')
