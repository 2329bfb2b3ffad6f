import logging

from sqlalchemy.orm import Session

from models.AuditTrail import AuditTrail, AuditEntityEnum

logger = logging.getLogger(__name__)


class AuditService:
    def __init__(self, db: Session):
        self.db = db

    def default_log(self,
                    entity_id,
                    entity_type: AuditEntityEnum,
                    description: str,
                    user_name: str):
        """Stage an audit row in the caller's transaction; it is committed together with the change it describes."""
        audit_entry = AuditTrail(
            entity_id=str(entity_id),
            entity_type=entity_type,
            description=description,
            user_name=user_name
        )
        self.db.add(audit_entry)
        logger.info("[%s:%s] %s (by %s)", entity_type.value, entity_id, description, user_name)
        return audit_entry

