from sqlalchemy import Boolean, DateTime, Column, inspect


class SoftDeleteMixin:
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    def soft_delete(self, visited=None):
        """
        Soft delete this object and all related objects that have the same method.
        Prevents infinite recursion using `visited` set.
        """
        from utils import get_local_now

        if visited is None:
            visited = set()

        if id(self) in visited:
            return
        visited.add(id(self))

        self.is_deleted = True
        self.deleted_at = get_local_now()

        for rel in inspect(type(self)).relationships:
            related = getattr(self, rel.key)
            if related is None:
                continue
            if isinstance(related, list):
                for obj in related:
                    if hasattr(obj, "soft_delete"):
                        obj.soft_delete(visited)
            elif hasattr(related, "soft_delete"):
                related.soft_delete(visited)
