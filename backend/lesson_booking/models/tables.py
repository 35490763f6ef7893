from sqlalchemy import Column, Index, Integer, Text, text

from sqlalchemy.orm import declarative_base

Base = declarative_base()
metadata = Base.metadata


class Locations(Base):
    __tablename__ = 'locations'

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    slot_interval_minutes = Column(Integer, nullable=False, server_default=text('60'))
    # {"0": {"enabled": true, "startTime": "09:00", "endTime": "18:00"}, ...}, 0 = Sunday
    work_schedule = Column(Text, nullable=False, server_default=text("'{}'"))
    calendar_id = Column(Text)
    # {"tennis": "<calendar id>", ...}
    sport_calendars = Column(Text, nullable=False, server_default=text("'{}'"))


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        Index('ix_bookings_location_start', 'location_id', 'date_start'),
    )

    # Deterministic slot id: sha256(location_id, service_id, start UTC)
    id = Column(Text, primary_key=True)
    location_id = Column(Text, nullable=False)
    service_id = Column(Text, nullable=False)
    # UTC, "YYYY-MM-DDTHH:MM:SS+00:00", so text ordering matches time ordering
    date_start = Column(Text, nullable=False)
    date_end = Column(Text, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    client_name = Column(Text, nullable=False)
    client_email = Column(Text)
    client_phone = Column(Text)
    sport = Column(Text)
    lesson_type = Column(Text)
    notes = Column(Text)
    status = Column(Text, nullable=False, server_default=text("'pending'"))
    calendar_id = Column(Text)
    external_event_id = Column(Text)
    created_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
