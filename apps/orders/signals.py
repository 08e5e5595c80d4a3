# apps/orders/signals.py
from django.dispatch import Signal

# Sent after the creating transaction commits
# args: order
order_created = Signal()

# Sent after a status transition commits
# args: order, old_status, new_status
order_status_changed = Signal()
