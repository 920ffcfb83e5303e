"""
Database models for authflow.

The schema itself is owned by the evolution scripts under
``evolutions/default``; these mappings must match them.

Authentication: email + password, bcrypt hashed storage.
"""
import logging
from typing import Optional

import bcrypt
from flask_sqlalchemy import SQLAlchemy

logger = logging.getLogger(__name__)

db = SQLAlchemy()


class User(db.Model):
    """
    A person who logs into the application.

    Users are identified by email; the name is only used for display.
    """
    __tablename__ = 'user'

    email = db.Column(db.String(255), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    def __repr__(self):
        return f'<User {self.email}>'

    def set_password(self, password: str):
        """Hash and set password."""
        self.password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    def verify_password(self, password: str) -> bool:
        """Verify password against hash."""
        try:
            return bcrypt.checkpw(password.encode('utf-8'), self.password_hash.encode('utf-8'))
        except (ValueError, TypeError):
            return False

    @classmethod
    def create(cls, email: str, name: str, password: str) -> 'User':
        """Create and persist a user."""
        user = cls(email=email, name=name)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        logger.info(f"User created: {email}")
        return user

    @classmethod
    def find_by_email(cls, email: str) -> Optional['User']:
        return db.session.get(cls, email)

    @classmethod
    def authenticate(cls, email: str, password: str) -> Optional['User']:
        """Return the user if the credentials match, else None."""
        user = cls.find_by_email(email)
        if user and user.verify_password(password):
            return user
        return None
