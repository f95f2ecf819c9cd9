from .in_memory import InMemoryAutoDeployJobRepository

__all__ = ["InMemoryAutoDeployJobRepository"]
