from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON
from db.base import Base


class DomainCheck(Base):
    __tablename__ = "domain_checks"
    id = Column(Integer, primary_key=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id"), index=True, nullable=False)
    domain = Column(String, nullable=False)
    ssl_valid = Column(Boolean, default=False)
    ssl_expires_at = Column(DateTime, nullable=True)
    ssl_issuer = Column(String, nullable=True)
    ssl_error = Column(String, nullable=True)
    dns_resolved = Column(Boolean, default=False)
    dns_records = Column(JSON, nullable=True)
    dns_error = Column(String, nullable=True)
    whois_registrar = Column(String, nullable=True)
    whois_expires_at = Column(DateTime, nullable=True)
    whois_error = Column(String, nullable=True)
    checked_at = Column(DateTime, nullable=False, index=True)
