from sqlalchemy import Column, DateTime, Integer, String, Text, func

from database import Base


class SavedDraftRecord(Base):
    __tablename__ = "saved_drafts"

    id = Column(String(64), primary_key=True, index=True)
    # Staff member who saved the draft; nobody else lists, loads or prunes it
    owner_id = Column(String(64), nullable=False, index=True)
    # Drafts of different application types never share a listing
    namespace = Column(String(64), nullable=False, index=True)
    name = Column(String(256), nullable=False)
    current_step = Column(Integer, nullable=False, default=1)
    # Full LoanApplicationDraft as JSON (attachments base64-encoded)
    snapshot = Column(Text, nullable=False)
    saved_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
