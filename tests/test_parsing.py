import re

from sarathi.utils.parsing import coerce_int, make_record_id, sanitize_identifier


def test_coerce_int():
    assert coerce_int("10") == 10
    assert coerce_int("10.2") == 10
    assert coerce_int("invalid") == 0
    assert coerce_int(None, default=5) == 5


def test_sanitize_identifier():
    assert sanitize_identifier("Ravi Kumar_45_Nalgonda") == "RAVI_KUMAR_45_NALGONDA"
    assert sanitize_identifier("a-b.c") == "A_B_C"


def test_make_record_id_format():
    record_id = make_record_id("SYM")
    assert re.fullmatch(r"SYM-\d{13}-[0-9a-f]{6}", record_id)
    assert make_record_id("SYM") != record_id
