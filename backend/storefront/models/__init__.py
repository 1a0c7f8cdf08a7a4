from .auth import User, SessionToken
from .catalog import Category, Product, ProductSku
from .taxonomy import ProductTag, ProductTagRelation, ProductAttribute, ProductAttributeValue
from .inventory import InventoryRecord, InventoryAlert
from .orders import Order, OrderDetail, ShippingAddress, OrderStatusLog
from .marketing import Coupon, UserCoupon, PointsRecord
from .cart import CartItem

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product', 'ProductSku',
    'ProductTag', 'ProductTagRelation', 'ProductAttribute', 'ProductAttributeValue',
    'InventoryRecord', 'InventoryAlert',
    'Order', 'OrderDetail', 'ShippingAddress', 'OrderStatusLog',
    'Coupon', 'UserCoupon', 'PointsRecord',
    'CartItem',
]
