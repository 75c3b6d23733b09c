from .auth import User, SessionToken
from .inventory import Product, Movement
from .sales import Sale
from .settings import PharmacyConfig

__all__ = [
    'User', 'SessionToken',
    'Product', 'Movement',
    'Sale',
    'PharmacyConfig',
]
