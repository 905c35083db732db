"""
Order engine services.

    coupons     - coupon evaluation and discount computation
    numbering   - unique order number allocation
    assembler   - cart validation, pricing and order persistence
    lifecycle   - status transitions and access control
    store       - persistence port and its SQL implementation
    events      - event publishers and the order event notifier
"""
