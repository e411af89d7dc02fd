"""Account model."""

from __future__ import annotations

from pydantic import Field

from pyiotux.models._base import IotuxBaseModel


class User(IotuxBaseModel):
    """The authenticated account, as returned by ``/login`` and ``/register``."""

    user_id: int
    name: str = ""
    email: str = ""
    auth_token: str = Field(default="", repr=False)
