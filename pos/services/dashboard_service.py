"""
Dashboard service.
Provides today's sales figures and low stock alerts.
"""

from datetime import datetime, date, time, timedelta
from sqlalchemy import func
from flask import current_app

from pos.models import Sale, SaleStatus, Product
from pos.services.cache_service import get_cache
from pos.services.inventory_service import get_low_stock_products
from pos.services.pricing_service import to_money


def get_dashboard_data(session, start_dt: datetime, end_dt: datetime) -> dict:
    """
    Get dashboard figures for a date range.

    Args:
        session: SQLAlchemy session
        start_dt: Start datetime (inclusive)
        end_dt: End datetime (exclusive)

    Returns:
        dict with keys:
            - sales_count: int
            - revenue: Decimal (sum of final amounts)
            - discounts: Decimal
            - tax: Decimal
            - product_count: int
            - low_stock_products: list of dicts
    """
    totals = session.query(
        func.count(Sale.id).label('sales_count'),
        func.coalesce(func.sum(Sale.final_amount), 0).label('revenue'),
        func.coalesce(func.sum(Sale.discount_amount), 0).label('discounts'),
        func.coalesce(func.sum(Sale.tax_amount), 0).label('tax')
    ).filter(
        Sale.status == SaleStatus.COMPLETED,
        Sale.datetime >= start_dt,
        Sale.datetime < end_dt
    ).first()

    product_count = session.query(func.count(Product.id)).filter(
        Product.active == True
    ).scalar() or 0

    low_stock_list = [
        {
            'id': product.id,
            'name': product.name,
            'stock': product.stock,
            'min_stock': product.min_stock,
        }
        for product in get_low_stock_products(session)[:10]
    ]

    return {
        'sales_count': int(totals.sales_count or 0),
        'revenue': to_money(totals.revenue),
        'discounts': to_money(totals.discounts),
        'tax': to_money(totals.tax),
        'product_count': product_count,
        'low_stock_products': low_stock_list
    }


def get_today_summary(session) -> dict:
    """Today's dashboard figures, cached for CACHE_DASHBOARD_TTL seconds."""
    start_dt, end_dt = get_today_datetime_range()
    return get_cache().memoize(
        'dashboard',
        f'summary:{start_dt.date().isoformat()}',
        lambda: get_dashboard_data(session, start_dt, end_dt),
        ttl=current_app.config.get('CACHE_DASHBOARD_TTL', 60)
    )


def get_today_datetime_range():
    """
    Get datetime range for today (local server time).

    Returns:
        tuple: (start_dt, end_dt) where start is 00:00:00 and end is the next midnight
    """
    today = date.today()
    start_dt = datetime.combine(today, time.min)
    end_dt = start_dt + timedelta(days=1)

    return start_dt, end_dt
