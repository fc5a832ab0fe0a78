from tokenvault.backends.http import HttpStorageBackend
from tokenvault.backends.memory import InMemoryStorageBackend

__all__ = ["HttpStorageBackend", "InMemoryStorageBackend"]
