"""
Checkout notification signals.

Services send these after their transaction commits; the application
factory connects receivers for logging and metrics. UI layers can
subscribe to surface toasts without the services knowing about them.
"""
from blinker import Namespace

_signals = Namespace()

sale_committed = _signals.signal('sale-committed')
sale_cancelled = _signals.signal('sale-cancelled')
sale_returned = _signals.signal('sale-returned')
stock_adjusted = _signals.signal('stock-adjusted')
promo_code_applied = _signals.signal('promo-code-applied')
promo_code_rejected = _signals.signal('promo-code-rejected')
