"""
Commandes de maintenance.

Usage:
    python -m nch_portal.manage create-admin --email admin@nch.dz --password ... --name "Admin"
    python -m nch_portal.manage reset-data --yes
    python -m nch_portal.manage expire-pending
"""

import argparse
import sys
from typing import List, Optional

from nch_portal.config import Settings, get_settings
from nch_portal.core.logging import logger, setup_logging
from nch_portal.core.security import get_password_hash
from nch_portal.database import Database
from nch_portal.models import Admin, Client, ClientStage, Payment, PendingRegistration
from nch_portal.services import registration_service


def create_admin(database: Database, email: str, password: str, name: str) -> Admin:
    """Crée un administrateur, ou réinitialise son mot de passe s'il existe déjà."""
    email = email.lower().strip()
    with database.session_scope() as db:
        admin = db.query(Admin).filter(Admin.email == email).first()
        if admin:
            admin.hashed_password = get_password_hash(password)
            admin.name = name
            admin.is_active = True
            logger.info(f"Administrateur mis à jour: {email}")
        else:
            admin = Admin(
                email=email,
                hashed_password=get_password_hash(password),
                name=name,
            )
            db.add(admin)
            logger.info(f"Administrateur créé: {email}")
        db.flush()
        db.expunge(admin)
    return admin


def reset_data(database: Database) -> dict:
    """Supprime étapes, paiements, inscriptions provisoires et clients. Les admins sont conservés."""
    counts = {}
    with database.session_scope() as db:
        # Ordre imposé par les clés étrangères
        for model in (ClientStage, Payment, PendingRegistration, Client):
            counts[model.__tablename__] = db.query(model).delete(synchronize_session=False)
    logger.warning(f"Données réinitialisées: {counts}")
    return counts


def expire_pending(database: Database) -> int:
    with database.session_scope() as db:
        return registration_service.expire_stale_registrations(db)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nch_portal.manage", description="Maintenance NCH Portal")
    subparsers = parser.add_subparsers(dest="command", required=True)

    admin_parser = subparsers.add_parser("create-admin", help="Créer ou réinitialiser un administrateur")
    admin_parser.add_argument("--email", required=True)
    admin_parser.add_argument("--password", required=True)
    admin_parser.add_argument("--name", default="Administrateur")

    reset_parser = subparsers.add_parser("reset-data", help="Supprimer toutes les données clients")
    reset_parser.add_argument("--yes", action="store_true", help="Confirmer la suppression")

    subparsers.add_parser("expire-pending", help="Expirer les inscriptions dont l'échéance est passée")

    return parser


def main(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = settings or get_settings()
    setup_logging(log_level="INFO", log_file=settings.LOG_FILE)

    database = Database(settings.DATABASE_URL)
    try:
        if args.command == "create-admin":
            admin = create_admin(database, args.email, args.password, args.name)
            print(f"Administrateur prêt: {admin.email}")
        elif args.command == "reset-data":
            if not args.yes:
                print("Opération destructive: relancer avec --yes pour confirmer", file=sys.stderr)
                return 1
            counts = reset_data(database)
            for table, count in counts.items():
                print(f"{table}: {count} ligne(s) supprimée(s)")
        elif args.command == "expire-pending":
            count = expire_pending(database)
            print(f"{count} inscription(s) expirée(s)")
    finally:
        database.dispose()

    return 0


if __name__ == "__main__":
    sys.exit(main())
