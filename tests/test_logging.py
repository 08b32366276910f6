import json

from nch_portal.core.logging import log_payment_event, logger, setup_logging


def test_payment_events_go_to_audit_log(tmp_path):
    log_file = tmp_path / "logs" / "nch_portal.log"
    setup_logging(log_file=str(log_file))

    log_payment_event(
        event_type="verification",
        payment_id="42",
        amount=10500.0,
        status="verified",
        method="baridimob",
    )
    logger.info("Client 7 mis à jour")
    logger.complete()

    audit = (log_file.parent / "payments.log").read_text(encoding="utf-8")
    assert "verification | paiement=42 | 10500.0 DZD | baridimob | verified" in audit
    assert "Client 7" not in audit
    assert "Client 7 mis à jour" in log_file.read_text(encoding="utf-8")


def test_secrets_are_masked(tmp_path):
    log_file = tmp_path / "nch_portal.log"
    setup_logging(log_file=str(log_file))

    logger.info("Retour paiement carte: token=card_123_abcdef signature=AbC-_9 statut=success")
    logger.complete()

    content = log_file.read_text(encoding="utf-8")
    assert "token=***" in content
    assert "signature=***" in content
    assert "card_123_abcdef" not in content
    assert "statut=success" in content


def test_json_file_logs(tmp_path):
    log_file = tmp_path / "nch_portal.log"
    setup_logging(log_file=str(log_file), json_logs=True)

    logger.warning("Synchronisation différée")
    logger.complete()

    entries = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert any(e["record"]["message"] == "Synchronisation différée" for e in entries)
    assert (tmp_path / "errors.log").exists()
