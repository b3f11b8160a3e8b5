from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session, select

from signproof.models.audit import AuditLog


class AuditService:
    """Trilha de auditoria por contrato (signature_added, signature_declined, evidence_exported...)."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def record_event(
        self,
        event_type: str,
        contract_id: UUID | None = None,
        actor: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict | None = None,
        commit: bool = True,
    ) -> AuditLog:
        log = AuditLog(
            contract_id=contract_id,
            event_type=event_type,
            actor=actor,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details or {},
        )
        self.session.add(log)
        if commit:
            self.session.commit()
        return log

    def list_events(
        self,
        contract_id: UUID | None = None,
        event_type: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[AuditLog], int]:
        query = select(AuditLog)
        if contract_id:
            query = query.where(AuditLog.contract_id == contract_id)
        if event_type:
            query = query.where(AuditLog.event_type == event_type)

        total = self.session.exec(
            select(func.count()).select_from(query.subquery())
        ).one()

        items = self.session.exec(
            query.order_by(AuditLog.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return list(items), total
