"""Политика распределения фонда: валидация и обновление владельцем."""

from .store import AllocationPolicyStore

__all__ = ["AllocationPolicyStore"]
