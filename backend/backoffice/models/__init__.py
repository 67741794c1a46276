from .tenancy import Tenant, Outlet, OutletSetting
from .auth import User, UserPin
from .inventory import Product, Ingredient, RecipeItem, StockMove
from .sales import Customer, LoyaltyRule, LoyaltyProgress, Order, OrderItem
from .registers import Register, RegisterTransaction
from .wallets import Wallet, WalletTransfer
from .rollups import DailyClosure, MonthlySummary

__all__ = [
    'Tenant', 'Outlet', 'OutletSetting',
    'User', 'UserPin',
    'Product', 'Ingredient', 'RecipeItem', 'StockMove',
    'Customer', 'LoyaltyRule', 'LoyaltyProgress', 'Order', 'OrderItem',
    'Register', 'RegisterTransaction',
    'Wallet', 'WalletTransfer',
    'DailyClosure', 'MonthlySummary',
]
