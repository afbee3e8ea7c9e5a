from .auth import Team, User, Role, UserRole, Permission, RolePermission, SessionToken
from .security import SecurityEvent
from .access import AccessGrant
from .catalog import Brand, Category, Gender, Product, ProductItem, ExpenseType
from .sales import Customer, Address, OrderAddress, Order, OrderItem
from .expenses import Expense
from .sync import SyncState

__all__ = [
    'Team', 'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken',
    'SecurityEvent',
    'AccessGrant',
    'Brand', 'Category', 'Gender', 'Product', 'ProductItem', 'ExpenseType',
    'Customer', 'Address', 'OrderAddress', 'Order', 'OrderItem',
    'Expense',
    'SyncState',
]
