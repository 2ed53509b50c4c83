"""Client domain exports."""
from .entity import Client
from .repository import ClientRepository

__all__ = ["Client", "ClientRepository"]
