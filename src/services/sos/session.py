"""
Session Providers

Supply the current user identity to the SOS controller and notify listeners
when it changes. ApiSessionProvider signs in against the backend and keeps the
issued token in a CredentialStore so sessions survive restarts.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ...core.http_client import ApiClient, HTTPRequestError
from ...core.logging import get_logger
from ...models.alert import User


SessionListener = Callable[[Optional[User]], None]


DEFAULT_AUTH_ENDPOINTS = {
    'signin': '/api/auth/signin',
    'me': '/api/me',
}


class AuthenticationError(Exception):
    """Sign-in or identity lookup failed"""
    pass


class SessionProvider:
    """Observable current-user identity"""

    def __init__(self):
        self.logger = get_logger("sos.session")
        self._user: Optional[User] = None
        self._listeners: List[SessionListener] = []

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def add_listener(self, listener: SessionListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _set_user(self, user: Optional[User]) -> None:
        previous = self._user
        self._user = user

        previous_id = previous.id if previous else None
        current_id = user.id if user else None
        if previous_id == current_id:
            return

        for listener in list(self._listeners):
            try:
                listener(user)
            except Exception as e:
                self.logger.error(f"Error in session listener: {e}")


class StaticSessionProvider(SessionProvider):
    """Session whose identity is set directly by the embedding application"""

    def __init__(self, user: Optional[User] = None):
        super().__init__()
        self._user = user

    def set_user(self, user: Optional[User]) -> None:
        self._set_user(user)


class CredentialStore:
    """Persists the session token and cached user as JSON"""

    def __init__(self, path: str):
        self.logger = get_logger("sos.session")
        self.path = Path(os.path.expanduser(path))

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r') as f:
                return json.load(f) or {}
        except (OSError, json.JSONDecodeError) as e:
            self.logger.warning(f"Ignoring unreadable credentials file {self.path}: {e}")
            return {}

    def get_token(self) -> Optional[str]:
        return self.load().get('token')

    def save(self, token: str, user: User) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump({'token': token, 'user': user.to_dict()}, f, indent=2)
        try:
            self.path.chmod(0o600)
        except OSError:
            pass

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class ApiSessionProvider(SessionProvider):
    """Session backed by the backend's sign-in and current-user endpoints"""

    def __init__(self, client: ApiClient, store: CredentialStore,
                 endpoints: Optional[Dict[str, str]] = None):
        super().__init__()
        self.client = client
        self.store = store
        self.endpoints = dict(DEFAULT_AUTH_ENDPOINTS)
        if endpoints:
            self.endpoints.update(endpoints)

    def get_token(self) -> Optional[str]:
        """Token provider for ApiClient"""
        return self.store.get_token()

    async def sign_in(self, email: str, password: str) -> User:
        """
        Sign in and persist the issued token

        Raises:
            AuthenticationError: If the backend rejects the credentials
        """
        try:
            data = await self.client.post(
                self.endpoints['signin'],
                data={'email': email, 'password': password}
            )
        except HTTPRequestError as e:
            raise AuthenticationError(f"Sign in failed: {e}")

        if not isinstance(data, dict) or not data.get('token') or not data.get('user'):
            raise AuthenticationError("Sign in response is missing token or user")

        try:
            user = User.from_dict(data['user'])
        except (ValueError, TypeError) as e:
            raise AuthenticationError(f"Sign in returned an invalid user: {e}")

        self.store.save(data['token'], user)
        self.logger.info(f"Signed in as {user.email or user.id}")
        self._set_user(user)
        return user

    async def refresh_user(self) -> Optional[User]:
        """
        Resolve the identity behind the stored token.

        A missing token means no session. A rejected token ends the session
        and clears the stored token; other failures end the session but keep
        the token for the next attempt.
        """
        if not self.store.get_token():
            self._set_user(None)
            return None

        try:
            data = await self.client.get(self.endpoints['me'])
            user = User.from_dict(data or {})
        except HTTPRequestError as e:
            self.logger.error(f"Failed to refresh user: {e}")
            if e.status in (401, 403):
                self.logout()
            else:
                self._set_user(None)
            return None
        except (ValueError, TypeError) as e:
            self.logger.error(f"Backend returned an invalid user: {e}")
            self.logout()
            return None

        self._set_user(user)
        return user

    def logout(self) -> None:
        self.store.clear()
        self._set_user(None)
