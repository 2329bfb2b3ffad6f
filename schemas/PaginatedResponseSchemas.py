from typing import Generic, List, TypeVar

from pydantic import BaseModel

# A generic type variable to make the PaginatedResponse reusable for different data types
T = TypeVar('T')


class PaginatedResponse(BaseModel, Generic[T]):
    """
    A generic Pydantic model for list responses.
    `data` holds the current page, `total` the count before paging.
    """
    data: List[T]
    total: int
