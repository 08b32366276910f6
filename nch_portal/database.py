"""
Configuration de la base de données avec SQLAlchemy.
Le moteur et la factory de sessions sont portés par un objet `Database`
créé par l'application au démarrage, et non par un module global.
"""

from contextlib import contextmanager
from typing import Generator
import time

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from nch_portal.core.logging import logger, log_database_query


# Classe de base pour tous les modèles
Base = declarative_base()


def _build_engine(url: str, echo: bool = False) -> Engine:
    """Crée le moteur SQLAlchemy adapté au type de base."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    # Pool de connexions pour PostgreSQL
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=10,  # Nombre de connexions permanentes
        max_overflow=20,  # Connexions supplémentaires temporaires
        pool_timeout=30,  # Timeout pour obtenir une connexion
        pool_recycle=1800,  # Recycler les connexions après 30 minutes
        pool_pre_ping=True,  # Vérifier la connexion avant utilisation
        echo=echo,
    )


class Database:
    """
    Handle de persistance possédé par la racine de composition.

    Usage:
        db = Database(settings.DATABASE_URL)
        with db.session_scope() as session:
            session.query(Client).all()
        db.dispose()
    """

    def __init__(self, url: str, echo: bool = False, log_queries: bool = False):
        self.url = url
        self.engine = _build_engine(url, echo=echo)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
        )
        self._log_queries = log_queries
        self._register_listeners()

    def _register_listeners(self) -> None:
        # Event listeners pour logger les requêtes SQL avec leur durée
        @event.listens_for(self.engine, "before_cursor_execute")
        def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            conn.info.setdefault("query_start_time", []).append(time.time())

        @event.listens_for(self.engine, "after_cursor_execute")
        def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            total_time = time.time() - conn.info["query_start_time"].pop(-1)
            duration_ms = total_time * 1000

            # Logger uniquement si la requête prend plus de 10ms ou en mode debug
            if duration_ms > 10 or self._log_queries:
                log_database_query(
                    query=statement,
                    duration_ms=duration_ms,
                    params=parameters if isinstance(parameters, dict) else None,
                )

    def session(self) -> Session:
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Context manager pour utilisation hors requête HTTP
        (tâches en arrière-plan, commandes de maintenance).
        """
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception as e:
            logger.error(f"Erreur de transaction: {e}")
            db.rollback()
            raise
        finally:
            db.close()

    def create_all(self) -> None:
        """
        Crée toutes les tables.
        À utiliser uniquement en développement ou pour les tests;
        en production, utiliser Alembic.
        """
        # Import des modèles pour peupler Base.metadata
        import nch_portal.models  # noqa: F401

        logger.info("Initialisation de la base de données...")
        Base.metadata.create_all(bind=self.engine)
        logger.info("Tables créées avec succès")

    def check_connection(self) -> bool:
        """Vérifie que la connexion à la base de données fonctionne."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Impossible de se connecter à la base de données: {e}")
            return False

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Connexions à la base de données fermées")


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Générateur de session de base de données pour l'injection de dépendances.

    Usage:
        @router.get("/clients")
        def list_clients(db: Session = Depends(get_db)):
            return db.query(Client).all()
    """
    database: Database = request.app.state.db
    db = database.session()
    try:
        yield db
    except Exception as e:
        logger.error(f"Erreur lors de l'utilisation de la session: {e}")
        db.rollback()
        raise
    finally:
        db.close()


__all__ = [
    "Base",
    "Database",
    "get_database",
    "get_db",
]
