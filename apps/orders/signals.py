# apps/orders/signals.py
from django.dispatch import Signal

# Orders app signals. All of them are sent via transaction.on_commit,
# so receivers never observe rolled-back state.

# args: order
order_placed = Signal()

# Payment completed, stock committed. args: order, payment
order_confirmed = Signal()

# Admin override. args: order, old_status, new_status, field
order_status_changed = Signal()
