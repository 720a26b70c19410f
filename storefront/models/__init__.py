from storefront.models.user import Address, Role, ROLE_RANK, User
from storefront.models.catalog import Brand, Category, InventoryLog, InventoryLogType, Product, Supplier
from storefront.models.cart import Cart, CartItem
from storefront.models.wishlist import DEFAULT_WISHLIST_NAME, Wishlist, WishlistItem
from storefront.models.order import (
    Coupon,
    DiscountType,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)

__all__ = [
    "Address", "Role", "ROLE_RANK", "User",
    "Brand", "Category", "InventoryLog", "InventoryLogType", "Product", "Supplier",
    "Cart", "CartItem",
    "DEFAULT_WISHLIST_NAME", "Wishlist", "WishlistItem",
    "Coupon", "DiscountType", "Order", "OrderItem", "OrderStatus",
    "Payment", "PaymentMethod", "PaymentStatus",
]
