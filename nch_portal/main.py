"""
NCH Portal - Point d'entrée principal de l'application.
Inscription, espace client et back-office d'une agence d'accompagnement
à l'immigration professionnelle.
"""

import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError

from nch_portal.config import Settings, get_settings
from nch_portal.database import Database
from nch_portal.core.exceptions import AppError
from nch_portal.core.logging import setup_logging, logger, log_request
from nch_portal.core.security import decode_token_unsafe
from nch_portal.services.email_service import EmailService
from nch_portal.services.sheets_service import SheetsService
from nch_portal.services.storage_service import StorageService
from nch_portal.api.v1.router import api_router


DESCRIPTION = """
## NCH Community - Portail clients

### Fonctionnalités principales:

* **Inscription** - Formulaire public, paiement BaridiMob ou carte (CIB / Edahabia)
* **Espace client** - Suivi des six étapes, statut de paiement, deuxième paiement
* **Back-office** - Clients, vérification des reçus, documents, export CSV
* **Synchronisation** - Miroir des dossiers dans Google Sheets

### Rôles:

* **Client** - Consulte son dossier et règle le deuxième paiement
* **Admin** - Gère les dossiers et valide les paiements
"""


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    storage: Optional[StorageService] = None,
    sheets: Optional[SheetsService] = None,
    email: Optional[EmailService] = None,
) -> FastAPI:
    """
    Construit l'application et ses collaborateurs.

    Le handle de base de données et les services externes sont attachés
    à `app.state`; les routes les obtiennent par injection de dépendances.
    """
    settings = settings or get_settings()

    setup_logging(
        log_level="DEBUG" if settings.DEBUG else "INFO",
        log_file=settings.LOG_FILE,
        json_logs=settings.ENVIRONMENT == "production",
    )

    database = database or Database(settings.DATABASE_URL, log_queries=settings.DEBUG)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Gestionnaire de cycle de vie de l'application.
        Exécuté au démarrage et à l'arrêt.
        """
        logger.info("=" * 60)
        logger.info(f"Démarrage de {settings.APP_NAME} v{settings.APP_VERSION}")
        logger.info(f"Environnement: {settings.ENVIRONMENT}")
        logger.info("=" * 60)

        if database.check_connection():
            logger.info("Connexion à la base de données établie")
            # En développement, les tables sont créées sans passer par Alembic
            if settings.DEBUG:
                database.create_all()
        else:
            logger.error("Impossible de se connecter à la base de données!")

        logger.info("Application prête à recevoir des requêtes")

        yield

        logger.info("Arrêt de l'application...")
        database.dispose()
        logger.info("Application arrêtée proprement")

    app = FastAPI(
        title=settings.APP_NAME,
        description=DESCRIPTION,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_tags=[
            {"name": "Authentification", "description": "Connexion admin et client, tokens JWT"},
            {"name": "Inscriptions", "description": "Tunnel d'inscription et revue des inscriptions"},
            {"name": "Espace client", "description": "Dossier du client connecté"},
            {"name": "Clients", "description": "Back-office: dossiers, étapes, paiements, documents"},
            {"name": "Paiements", "description": "Retour de paiement carte"},
            {"name": "Fichiers", "description": "Envoi de reçus et pièces justificatives"},
        ],
    )

    app.state.settings = settings
    app.state.db = database
    app.state.storage = storage or StorageService(settings)
    app.state.sheets = sheets or SheetsService(settings)
    app.state.email = email or EmailService(settings)

    # Configuration CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            settings.FRONTEND_URL,
            "http://localhost:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Middleware de logging des requêtes
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        # Rôle et identifiant de l'appelant si un token est présent
        principal = None
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            payload = decode_token_unsafe(auth_header[7:])
            if payload:
                principal = f"{payload.get('role')}:{payload.get('sub')}"

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        log_request(
            method=request.method,
            url=str(request.url.path),
            status_code=response.status_code,
            duration_ms=duration_ms,
            principal=principal,
        )

        response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"
        return response

    # Erreurs métier
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        logger.warning(f"{type(exc).__name__} sur {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Gestionnaire d'erreurs de validation
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.warning(f"Erreur de validation: {exc.errors()}")

        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(x) for x in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Erreur de validation des données",
                "code": "request_validation_error",
                "errors": errors,
            },
        )

    # Gestionnaire d'erreurs SQLAlchemy
    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(
        request: Request,
        exc: SQLAlchemyError,
    ) -> JSONResponse:
        logger.error(f"Erreur SQLAlchemy: {exc}")

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Erreur de base de données",
                "code": "database_error",
            },
        )

    # Gestionnaire d'erreurs génériques
    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.opt(exception=exc).error(f"Erreur non gérée: {exc}")

        if settings.DEBUG:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "detail": str(exc),
                    "type": type(exc).__name__,
                },
            )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Une erreur interne est survenue"},
        )

    app.include_router(api_router, prefix="/api/v1")

    @app.get(
        "/health",
        tags=["Système"],
        summary="Vérification de l'état de l'application",
    )
    async def health_check():
        """Endpoint de health check pour les load balancers et monitoring."""
        db_status = "ok" if database.check_connection() else "error"

        return {
            "status": "ok" if db_status == "ok" else "degraded",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "database": db_status,
        }

    @app.get("/", tags=["Système"])
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs" if settings.DEBUG else "Documentation désactivée en production",
            "health": "/health",
            "api": "/api/v1",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "nch_portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().DEBUG,
        log_level="debug" if get_settings().DEBUG else "info",
    )
