"""
Top-level models import shim for the Orders app.

Lets ``from apps.orders.models import Order`` work while the models
themselves live in separate modules.
"""

from .order import *          # Order, OrderStatus
from .item import *           # OrderItem
from .timeline import *       # OrderTimeline
from .cart import *           # Cart, CartItem
