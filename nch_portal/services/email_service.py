"""
Service d'envoi d'emails pour NCH Portal.
Gère l'envoi des identifiants de connexion et des notifications d'inscription.
"""

import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from nch_portal.config import Settings, settings as default_settings
from nch_portal.core.logging import logger


_STYLE = """
    body { font-family: 'Segoe UI', Arial, sans-serif; background-color: #f5f5f5; margin: 0; padding: 20px; }
    .container { max-width: 520px; margin: 0 auto; background: white; border-radius: 16px; overflow: hidden; box-shadow: 0 4px 20px rgba(0,0,0,0.1); }
    .header { background: linear-gradient(135deg, #1E3A8A 0%, #2563EB 100%); padding: 30px; text-align: center; }
    .header h1 { color: white; margin: 0; font-size: 26px; }
    .content { padding: 30px; }
    .box { background: #f8f9fa; border: 2px dashed #2563EB; border-radius: 12px; padding: 20px; margin: 20px 0; }
    .footer { background: #f8f9fa; padding: 20px; text-align: center; color: #666; font-size: 12px; }
    p { color: #333; line-height: 1.6; }
"""


class EmailService:
    """Service pour l'envoi d'emails."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.smtp_host = self.settings.SMTP_HOST
        self.smtp_port = self.settings.SMTP_PORT
        self.smtp_user = self.settings.SMTP_USER
        self.smtp_password = self.settings.SMTP_PASSWORD
        self.email_from = self.settings.EMAIL_FROM

    def _create_connection(self) -> smtplib.SMTP:
        """Crée une connexion SMTP."""
        server = smtplib.SMTP(self.smtp_host, self.smtp_port)
        server.starttls()
        if self.smtp_user and self.smtp_password:
            server.login(self.smtp_user, self.smtp_password)
        return server

    def _render(self, title: str, body: str) -> str:
        app_name = self.settings.APP_NAME
        return f"""
        <!DOCTYPE html>
        <html>
        <head><meta charset="utf-8"><style>{_STYLE}</style></head>
        <body>
            <div class="container">
                <div class="header"><h1>{title}</h1></div>
                <div class="content">{body}</div>
                <div class="footer"><p>L'équipe {app_name}</p></div>
            </div>
        </body>
        </html>
        """

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> bool:
        """
        Envoie un email.

        Returns:
            True si l'envoi a réussi (ou a été simulé), False sinon
        """
        if not self.smtp_user or not self.smtp_password:
            logger.warning("Configuration SMTP manquante - Email non envoyé")
            logger.info(f"Email simulé vers {to_email}: {subject}")
            return True  # Ne pas bloquer en dev

        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{self.settings.APP_NAME} <{self.email_from}>"
            msg["To"] = to_email

            if text_content:
                msg.attach(MIMEText(text_content, "plain", "utf-8"))
            msg.attach(MIMEText(html_content, "html", "utf-8"))

            with self._create_connection() as server:
                server.sendmail(self.email_from, to_email, msg.as_string())

            logger.info(f"Email envoyé à {to_email}: {subject}")
            return True

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Erreur lors de l'envoi de l'email à {to_email}: {e}")
            return False

    def send_credentials_email(
        self,
        to_email: str,
        client_name: str,
        password: Optional[str] = None,
    ) -> bool:
        """
        Envoie les identifiants d'accès à l'espace client.

        Le mot de passe n'est inclus que s'il est connu en clair
        (création manuelle par un admin); sinon le client utilise
        celui affiché lors de son inscription.
        """
        subject = f"{self.settings.APP_NAME} - Votre espace client est activé"
        login_url = f"{self.settings.FRONTEND_URL}/client/login"

        if password:
            credentials = f"""
                <div class="box">
                    <p><strong>Email :</strong> {to_email}<br>
                    <strong>Mot de passe :</strong> <code>{password}</code></p>
                </div>
            """
        else:
            credentials = f"""
                <div class="box">
                    <p><strong>Email :</strong> {to_email}<br>
                    Utilisez le mot de passe qui vous a été communiqué lors de votre inscription.</p>
                </div>
            """

        html_content = self._render(
            "Bienvenue !",
            f"""
            <p>Bonjour <strong>{client_name}</strong>,</p>
            <p>Votre paiement a été validé et votre espace client est désormais accessible.</p>
            {credentials}
            <p><a href="{login_url}">Accéder à mon espace</a></p>
            """,
        )

        text_content = (
            f"Bonjour {client_name},\n\n"
            f"Votre espace client est activé: {login_url}\n"
            f"Email: {to_email}\n"
            + (f"Mot de passe: {password}\n" if password else "")
        )

        return self.send_email(to_email, subject, html_content, text_content)

    def send_rejection_email(
        self,
        to_email: str,
        client_name: str,
        reason: Optional[str] = None,
    ) -> bool:
        """Informe le candidat du rejet de son reçu de paiement."""
        subject = f"{self.settings.APP_NAME} - Paiement non validé"
        reason_html = f"<p><strong>Motif :</strong> {reason}</p>" if reason else ""

        html_content = self._render(
            "Paiement non validé",
            f"""
            <p>Bonjour <strong>{client_name}</strong>,</p>
            <p>Nous n'avons pas pu valider le reçu de paiement joint à votre inscription.</p>
            {reason_html}
            <p>Vous pouvez soumettre une nouvelle inscription avec un reçu valide.</p>
            """,
        )
        return self.send_email(to_email, subject, html_content)
