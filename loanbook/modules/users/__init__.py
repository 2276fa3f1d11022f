# Users module
from loanbook.modules.users.models import User, Currency
from loanbook.modules.users.services import UserService

__all__ = ["User", "Currency", "UserService"]
