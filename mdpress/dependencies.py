"""
Dependency injection container and FastAPI dependency functions
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from .auth_service import AuthService
from .config import get_settings
from .database import Database
from .documents import DocumentService
from .exceptions import UnauthorizedError
from .interactions import AnalyticsService, InteractionService
from .security import ACCESS_TOKEN, decode_token
from .services import PublicationService, SearchService

_settings = get_settings()

# auto_error=False so anonymous callers reach optional-auth routes; required
# routes raise UnauthorizedError themselves
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{_settings.api_prefix}/auth/login", auto_error=False)


class ServiceContainer:
    """Dependency injection container"""

    def __init__(self):
        self._instances = {}
        self._settings = get_settings()

    @property
    def settings(self):
        """Get application settings"""
        return self._settings

    @property
    def database(self) -> Database:
        if 'database' not in self._instances:
            self._instances['database'] = Database()
        return self._instances['database']

    @property
    def auth_service(self) -> AuthService:
        if 'auth_service' not in self._instances:
            self._instances['auth_service'] = AuthService(self.database)
        return self._instances['auth_service']

    @property
    def document_service(self) -> DocumentService:
        if 'document_service' not in self._instances:
            self._instances['document_service'] = DocumentService(self.database)
        return self._instances['document_service']

    @property
    def interaction_service(self) -> InteractionService:
        if 'interaction_service' not in self._instances:
            self._instances['interaction_service'] = InteractionService(self.database)
        return self._instances['interaction_service']

    @property
    def analytics_service(self) -> AnalyticsService:
        if 'analytics_service' not in self._instances:
            self._instances['analytics_service'] = AnalyticsService(self.database)
        return self._instances['analytics_service']

    @property
    def publication_service(self) -> PublicationService:
        if 'publication_service' not in self._instances:
            self._instances['publication_service'] = PublicationService(
                database=self.database,
                views=self.interaction_service,
            )
        return self._instances['publication_service']

    @property
    def search_service(self) -> SearchService:
        if 'search_service' not in self._instances:
            self._instances['search_service'] = SearchService(self.database)
        return self._instances['search_service']

    async def close(self):
        """Dispose the engine and forget every instance"""
        if 'database' in self._instances:
            await self._instances['database'].dispose()
        self._instances.clear()


@lru_cache()
def get_container() -> ServiceContainer:
    """Get the global service container"""
    return ServiceContainer()


# FastAPI dependency functions
def get_auth_service() -> AuthService:
    return get_container().auth_service


def get_document_service() -> DocumentService:
    return get_container().document_service


def get_publication_service() -> PublicationService:
    return get_container().publication_service


def get_search_service() -> SearchService:
    return get_container().search_service


def get_interaction_service() -> InteractionService:
    return get_container().interaction_service


def get_analytics_service() -> AnalyticsService:
    return get_container().analytics_service


async def get_optional_user(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[int]:
    """
    Id of the authenticated caller, or None when no bearer token was sent.

    A token that is present but invalid is still rejected.
    """
    if not token:
        return None
    return decode_token(token, ACCESS_TOKEN)["user_id"]


async def get_current_user(user_id: Optional[int] = Depends(get_optional_user)) -> int:
    """Id of the authenticated caller; 401 when anonymous"""
    if user_id is None:
        raise UnauthorizedError("Authentication required")
    return user_id
