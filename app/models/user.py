import sqlmodel

from ._base import BaseModel


class User(BaseModel, table=True):
    """Account owning imported pulls, managed by the auth service."""

    __tablename__: str = "users"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    uid: str = sqlmodel.Field(max_length=64, unique=True, index=True)
    """Public user identifier, used as the JWT subject"""
    username: str | None = sqlmodel.Field(default=None, max_length=100, nullable=True)
    is_admin: bool = False
