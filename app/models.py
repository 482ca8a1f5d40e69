from sqlalchemy import BigInteger, Column, Integer, String, Text

from app.database import Base


class ScanHistory(Base):
    __tablename__ = "scan_history"

    id = Column(String, primary_key=True, index=True)  # uuid4 hex
    user_id = Column(String, index=True, nullable=False)
    content = Column(Text, nullable=False)
    type = Column(String, nullable=False)  # 'URL', 'EMAIL', 'PHONE', 'TEXT', 'GENERATED'
    timestamp_ms = Column(BigInteger, index=True, nullable=False)
    display_text = Column(Text, nullable=False)


class UserProfile(Base):
    __tablename__ = "user_profiles"

    uid = Column(String, primary_key=True, index=True)
    email = Column(String, default="")
    display_name = Column(String, default="")
    photo_base64 = Column(Text, default="")
    created_at_ms = Column(BigInteger, nullable=False)
    total_scans = Column(Integer, default=0, nullable=False)
