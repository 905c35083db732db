"""
                Food Ordering Engine

Order pricing and lifecycle backend for an online food-ordering platform:
cart assembly and pricing, coupon rules, the order status state machine,
and status-change notifications.
"""

__version__ = "1.0.0"
