from .refund import Refund
from .user import User

__all__ = ["Refund", "User"]
