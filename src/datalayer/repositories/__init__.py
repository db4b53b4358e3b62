from .base_repository import ListFilter, PaginatedResult, Repository, RepositoryConfig

__all__ = ["ListFilter", "PaginatedResult", "Repository", "RepositoryConfig"]
