"""FastAPI dependencies that hand each request a manager bound to the pool."""

from fastapi import Depends

from archive import ArchiveManager
from auth import AuthManager
from categories import CategoryManager
from database import get_pool
from messaging import MessagingGateway
from orders import OrderManager
from users import UserManager


async def get_auth_manager(pool=Depends(get_pool)) -> AuthManager:
    return AuthManager(pool)


async def get_user_manager(pool=Depends(get_pool)) -> UserManager:
    return UserManager(pool)


async def get_order_manager(pool=Depends(get_pool)) -> OrderManager:
    return OrderManager(pool)


async def get_archive_manager(pool=Depends(get_pool)) -> ArchiveManager:
    return ArchiveManager(pool)


async def get_messaging_gateway(pool=Depends(get_pool)) -> MessagingGateway:
    return MessagingGateway(pool)


async def get_category_manager(pool=Depends(get_pool)) -> CategoryManager:
    return CategoryManager(pool)
