from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from cryptography.fernet import Fernet, InvalidToken
from .database import Base
from .config import settings

# Initialize Fernet with a key derived from SECRET_KEY
# Note: Fernet keys must be 32 url-safe base64-encoded bytes.
import base64
import hashlib
key = base64.urlsafe_b64encode(hashlib.sha256(settings.SECRET_KEY.encode()).digest())
fernet = Fernet(key)


def _utcnow():
    return datetime.now(timezone.utc)


class EncryptedString(TypeDecorator):
    """Stored as encrypted text, decrypted on load."""
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return fernet.encrypt(value.encode()).decode()

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return fernet.decrypt(value.encode()).decode()
        except InvalidToken:
            # Plaintext tokens written before encryption was enabled
            return value

class Activity(Base):
    __tablename__ = "activities"

    # Strava activity id; rows created from the race sheet get negative ids
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, index=True)
    sport_type = Column(String, nullable=True)
    workout_type = Column(Integer, nullable=True)
    start_date = Column(DateTime, nullable=False, index=True)  # local time
    moving_time = Column(Integer, nullable=True)
    elapsed_time = Column(Integer, nullable=True)
    distance = Column(Float, nullable=True)
    total_elevation_gain = Column(Float, nullable=True)
    average_speed = Column(Float, nullable=True)
    max_speed = Column(Float, nullable=True)
    average_heartrate = Column(Float, nullable=True)
    max_heartrate = Column(Float, nullable=True)
    elev_high = Column(Float, nullable=True)
    elev_low = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    calories = Column(Float, nullable=True)
    location_country = Column(String, nullable=True)
    location_state = Column(String, nullable=True)
    location_city = Column(String, nullable=True)
    featured = Column(Boolean, nullable=False, default=False)
    source = Column(String, nullable=False, default="strava")
    last_synced_at = Column(DateTime, nullable=True)

    race = relationship("Race", back_populates="activity", uselist=False, cascade="all, delete-orphan")

class Race(Base):
    __tablename__ = "races"

    id = Column(Integer, primary_key=True, index=True)
    activity_id = Column(BigInteger, ForeignKey("activities.id"), unique=True, nullable=False)
    placement = Column(Integer, nullable=True)
    category = Column(String, nullable=True)
    race_type = Column(String, nullable=True)
    photo_url = Column(String, nullable=True)

    activity = relationship("Activity", back_populates="race")

class StravaToken(Base):
    __tablename__ = "strava_tokens"

    id = Column(Integer, primary_key=True, index=True)
    access_token = Column(EncryptedString, nullable=False)
    refresh_token = Column(EncryptedString, nullable=False)
    expires_at = Column(Integer, nullable=False)   # Unix timestamp
    scope = Column(String, nullable=True)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
