from typing import Optional

from pydantic import BaseModel


class Actor(BaseModel):
    """Who performed a ledger operation. Passed explicitly into every service call."""
    id: Optional[str] = None
    name: str

    class Config:
        frozen = True


SYSTEM_ACTOR = Actor(id="SYSTEM", name="Sistema")
