from .tenancy import Organization, Outlet
from .auth import User, SessionToken
from .catalog import Category, Product, InventoryTransaction
from .customers import Customer, CustomerGroup
from .sales import Sale, SaleItem, SaleReturn, SaleReturnItem
from .promotions import Promotion, PromotionUsage
from .delivery import DeliveryPartner, ShippingRate, Shipment
from .purchasing import Supplier, Purchase, PurchaseItem, SupplierPayment, PurchaseReturn, PurchaseReturnItem
from .quotations import Quotation, QuotationItem
from .transfers import Transfer
from .bookings import Booking
from .installments import Installment
from .finance import IncomeItem, Income, ExpenseCategory, Expense
from .staff import Employee, AttendanceRecord
from .accounts import Account
from .damage import Damage, DamageAction
from .warranty import Warranty, WarrantyClaim, WarrantyExtension
from .ledger import LedgerEvent, DocumentSequence

__all__ = [
    'Organization', 'Outlet',
    'User', 'SessionToken',
    'Category', 'Product', 'InventoryTransaction',
    'Customer', 'CustomerGroup',
    'Sale', 'SaleItem', 'SaleReturn', 'SaleReturnItem',
    'Promotion', 'PromotionUsage',
    'DeliveryPartner', 'ShippingRate', 'Shipment',
    'Supplier', 'Purchase', 'PurchaseItem', 'SupplierPayment', 'PurchaseReturn', 'PurchaseReturnItem',
    'Quotation', 'QuotationItem',
    'Transfer',
    'Booking',
    'Installment',
    'IncomeItem', 'Income', 'ExpenseCategory', 'Expense',
    'Employee', 'AttendanceRecord',
    'Account',
    'Damage', 'DamageAction',
    'Warranty', 'WarrantyClaim', 'WarrantyExtension',
    'LedgerEvent', 'DocumentSequence',
]
