"""
Modèle Admin - Comptes du back-office de l'agence.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime

from nch_portal.database import Base


class Admin(Base):
    """
    Administrateur du back-office.

    Attributes:
        id: Identifiant unique
        email: Adresse email (unique)
        hashed_password: Mot de passe hashé (bcrypt)
        name: Nom affiché
        is_active: Compte actif ou non
        last_login: Date de dernière connexion
    """

    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    name = Column(String(200), nullable=False, default="Administrateur")
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Admin(id={self.id}, email={self.email})>"
