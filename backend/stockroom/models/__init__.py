from .tenancy import User, Organization, OrganizationMember, OrganizationInvite
from .inventory import Warehouse, Product, ProductStock, ProductPrice, StockMovement
from .orders import Order, OrderItem

__all__ = [
    'User', 'Organization', 'OrganizationMember', 'OrganizationInvite',
    'Warehouse', 'Product', 'ProductStock', 'ProductPrice', 'StockMovement',
    'Order', 'OrderItem',
]
