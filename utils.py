from datetime import datetime
from typing import Optional

import jwt
import pytz
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import desc
from sqlalchemy.orm import Session

import config
from services.errors import NotFoundError
from schemas.ActorSchemas import Actor, SYSTEM_ACTOR

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def get_local_now() -> datetime:
    """
    Current wall-clock time at the sites, as a naive datetime.
    Everything is stored naive in the configured TIMEZONE so that values read
    back from SQLite and PostgreSQL compare the same way.
    """
    return datetime.now(pytz.timezone(config.TIMEZONE)).replace(tzinfo=None)


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(pytz.timezone(config.TIMEZONE)).replace(tzinfo=None)


def get_current_actor(token: Optional[str] = Depends(oauth2_scheme)) -> Actor:
    # Without a token the request acts as the system user
    if token is None:
        return SYSTEM_ACTOR

    try:
        payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.ALGORITHM])
    except jwt.exceptions.PyJWTError:
        return SYSTEM_ACTOR

    name = payload.get("un")
    if name is None:
        return SYSTEM_ACTOR
    subject = payload.get("sub")
    return Actor(id=str(subject) if subject is not None else None, name=name)


def generate_incremental_id(
        db: Session,
        model,
        id_field: str = "code",
        prefix: str = "INS-",
        created_at_field: str = "created_at",
        padding: int = 5
) -> str:
    """
    Generates the next incremental code for a given model.

    Args:
        db (Session): SQLAlchemy session
        model: SQLAlchemy model class (e.g., CatalogItem)
        id_field (str): Name of the code field in the model
        prefix (str): Prefix for the code (e.g., 'INS-')
        created_at_field (str): Name of the created_at field in the model
        padding (int): Number of digits to pad the numeric part

    Returns:
        str: New incremental code (e.g., 'INS-00005')
    """
    latest_record = (
        db.query(model)
        .filter(getattr(model, id_field).like(f"{prefix}%"))
        .order_by(desc(getattr(model, created_at_field)), desc(model.id))
        .first()
    )

    last_number = 0
    if latest_record:
        current_id = getattr(latest_record, id_field, "") or ""
        try:
            last_number = int(current_id[len(prefix):])
        except ValueError:
            last_number = 0

    return f"{prefix}{last_number + 1:0{padding}d}"


def soft_delete_record(session: Session, model_class, record_id):
    obj = session.get(model_class, record_id)
    if not obj or getattr(obj, "is_deleted", False):
        raise NotFoundError(model_class.__name__, record_id)
    if hasattr(obj, "soft_delete"):
        obj.soft_delete()
    else:
        raise ValueError(f"{model_class.__name__} does not support soft delete")
    session.commit()
