from .accounts import User, Agent
from .customers import Customer, CustomerAssignmentHistory, CustomerProgressHistory, FollowUpRecord
from .inventory import Product, InventoryRecord

__all__ = [
    'User', 'Agent',
    'Customer', 'CustomerAssignmentHistory', 'CustomerProgressHistory', 'FollowUpRecord',
    'Product', 'InventoryRecord',
]
