from sqlalchemy import Column, String, JSON, PrimaryKeyConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class VmqAuthAcl(Base):
    """Credential row read by the broker's auth plugin"""
    __tablename__ = "vmq_auth_acl"
    __table_args__ = (
        PrimaryKeyConstraint("mountpoint", "client_id", "username", name="vmq_auth_acl_primary_key"),
    )
    mountpoint = Column(String(10), nullable=False)
    client_id = Column(String(128), nullable=False)
    username = Column(String(128), nullable=False)
    password = Column(String(128))  # bcrypt hash, never the plaintext
    publish_acl = Column(JSON)
    subscribe_acl = Column(JSON)
