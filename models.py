from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    entries = db.relationship("PracticeEntry", backref="user", lazy=True, cascade="all, delete-orphan")

    def set_password(self, plaintext: str):
        self.password_hash = generate_password_hash(plaintext)

    def check_password(self, plaintext: str) -> bool:
        return check_password_hash(self.password_hash, plaintext)

    @property
    def name(self):
        return self.display_name or self.username

    def __repr__(self):
        return f"<User {self.username}>"


class PracticeEntry(db.Model):
    """One day of logged minutes for a registered user."""
    __tablename__ = "practice_entry"
    __table_args__ = (db.UniqueConstraint("user_id", "date", name="uq_practice_entry_user_date"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    meditation_minutes = db.Column(db.Integer, nullable=False, default=0)
    meditation_notes = db.Column(db.Text, nullable=True)
    prayer_minutes = db.Column(db.Integer, nullable=False, default=0)
    prayer_notes = db.Column(db.Text, nullable=True)
    reading_minutes = db.Column(db.Integer, nullable=False, default=0)
    reading_notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def total_minutes(self):
        return (self.meditation_minutes or 0) + (self.prayer_minutes or 0) + (self.reading_minutes or 0)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "date": self.date.isoformat(),
            "meditationMinutes": self.meditation_minutes or 0,
            "meditationNotes": self.meditation_notes,
            "prayerMinutes": self.prayer_minutes or 0,
            "prayerNotes": self.prayer_notes,
            "readingMinutes": self.reading_minutes or 0,
            "readingNotes": self.reading_notes,
            "totalMinutes": self.total_minutes,
        }

    def __repr__(self):
        return f"<PracticeEntry {self.date} {self.total_minutes}min>"


class Checkin(db.Model):
    """Anonymous yes/no check-in keyed by a free-text name."""
    __tablename__ = "checkin"
    __table_args__ = (db.UniqueConstraint("user_name", "date", name="uq_checkin_name_date"),)

    id = db.Column(db.Integer, primary_key=True)
    user_name = db.Column(db.String(80), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    meditation = db.Column(db.Boolean, nullable=False, default=False)
    prayer = db.Column(db.Boolean, nullable=False, default=False)
    reading = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "userName": self.user_name,
            "date": self.date.isoformat(),
            "meditation": bool(self.meditation),
            "prayer": bool(self.prayer),
            "reading": bool(self.reading),
        }

    def __repr__(self):
        return f"<Checkin {self.user_name} {self.date}>"
