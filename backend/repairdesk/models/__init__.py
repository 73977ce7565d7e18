from .auth import User, USER_ROLES
from .branches import Branch
from .catalog import ProductCategory, Product, Inventory
from .customers import Customer
from .documents import DocumentSequence
from .sales import Sale, SaleItem, Commission, PAYMENT_STATUSES, PAYMENT_METHODS
from .services import (
    ServiceCategory,
    ServiceRequest,
    ServiceRequestUpdate,
    ServicePartUsed,
    ServiceRequestAttachment,
    SERVICE_STATUSES,
    SERVICE_PRIORITIES,
    SERVICE_PAYMENT_STATUSES,
    SERVICE_PAYMENT_METHODS,
    UPDATE_TYPES,
)

__all__ = [
    "User",
    "USER_ROLES",
    "Branch",
    "ProductCategory",
    "Product",
    "Inventory",
    "Customer",
    "DocumentSequence",
    "Sale",
    "SaleItem",
    "Commission",
    "PAYMENT_STATUSES",
    "PAYMENT_METHODS",
    "ServiceCategory",
    "ServiceRequest",
    "ServiceRequestUpdate",
    "ServicePartUsed",
    "ServiceRequestAttachment",
    "SERVICE_STATUSES",
    "SERVICE_PRIORITIES",
    "SERVICE_PAYMENT_STATUSES",
    "SERVICE_PAYMENT_METHODS",
    "UPDATE_TYPES",
]
