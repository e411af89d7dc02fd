"""Account endpoints.

Endpoints:
  - POST /login
  - POST /register
"""

from __future__ import annotations

import logging

from pyiotux._api._common import parse_model
from pyiotux._transport import Transport
from pyiotux.exceptions import IotuxApiError
from pyiotux.models.user import User

_logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
REGISTER_PATH = "/register"


def _require_token(user: User, endpoint: str) -> User:
    if not user.auth_token:
        raise IotuxApiError(f"{endpoint} response missing auth_token", endpoint=endpoint)
    return user


async def login(transport: Transport, email: str, password: str) -> User:
    """Exchange credentials for a user record carrying an auth token."""
    response = await transport.request("POST", LOGIN_PATH, json={"email": email, "password": password})
    user = _require_token(parse_model(User, response, endpoint=LOGIN_PATH), LOGIN_PATH)
    _logger.debug("Logged in user_id=%s", user.user_id)
    return user


async def register(transport: Transport, name: str, email: str, password: str) -> User:
    """Create an account; the server logs it in straight away."""
    response = await transport.request(
        "POST",
        REGISTER_PATH,
        json={"name": name, "email": email, "password": password},
    )
    user = _require_token(parse_model(User, response, endpoint=REGISTER_PATH), REGISTER_PATH)
    _logger.debug("Registered user_id=%s", user.user_id)
    return user
