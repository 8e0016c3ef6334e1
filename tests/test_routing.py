from sarathi.core.routing import classify, estimate_severity, offline_summary
from sarathi.models.records import Severity


def test_chest_pain_routes_to_cardiology():
    assert classify("Severe CHEST pain since morning") == ("Cardiology", Severity.HIGH)


def test_rash_routes_to_dermatology():
    assert classify("itchy rash on arm") == ("Dermatology", Severity.MEDIUM)


def test_unmatched_text_defaults_to_general_medicine():
    assert classify("fever and cough") == ("General Medicine", Severity.MEDIUM)
    assert classify("") == ("General Medicine", Severity.MEDIUM)


def test_table_order_decides_ties():
    assert classify("rash on chest").specialty == "Cardiology"
    assert classify("baby has joint swelling").specialty == "Orthopedics"


def test_estimate_severity():
    assert estimate_severity("severe headache") == Severity.HIGH
    assert estimate_severity("slight fever") == Severity.LOW
    assert estimate_severity("fever") == Severity.MEDIUM


def test_offline_summary_is_provisional():
    summary = offline_summary("Ravi", "pregnancy checkup")
    assert summary["suggestedSpecialty"] == "Gynaecology"
    assert summary["urgency"] == "MEDIUM"
    assert summary["provisional"] is True
