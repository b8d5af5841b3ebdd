from question_flow.models import AnswerRecord
from question_flow.normalizer import normalize_answers


def _pairs(records):
    return [(r.questionCode, r.value) for r in records]


def test_missing_block_is_distinguished_from_empty_block():
    assert normalize_answers(None) is None
    assert normalize_answers({}) == []
    assert normalize_answers({"answers": None, "comboQuestions": "nope"}) == []


def test_answers_shape_trims_codes_and_keeps_order():
    records = normalize_answers(
        {"answers": [{"questionCode": " Q1 ", "value": "Y"}, {"questionCode": "Q2", "value": {"amount": 1}}]}
    )
    assert _pairs(records) == [("Q1", "Y"), ("Q2", {"amount": 1})]
    assert all(isinstance(r, AnswerRecord) for r in records)


def test_answers_shape_wins_over_legacy_shape():
    records = normalize_answers(
        {
            "answers": [{"questionCode": "Q1", "value": "Y"}],
            "comboQuestions": [{"key": "Q9", "value": "N"}],
        }
    )
    assert _pairs(records) == [("Q1", "Y")]


def test_empty_answers_list_does_not_fall_back_to_legacy_shape():
    assert normalize_answers({"answers": [], "comboQuestions": [{"key": "Q1", "value": "Y"}]}) == []


def test_legacy_combo_questions_are_translated():
    records = normalize_answers({"comboQuestions": [{"key": " Q1", "value": "Y"}, {"key": "Q2", "value": "hello"}]})
    assert _pairs(records) == [("Q1", "Y"), ("Q2", "hello")]


def test_legacy_and_modern_shapes_normalise_identically():
    pairs = [("Q1", "Y"), ("Q2", "text"), ("Q3", {"amount": "10.5", "currency": "BRL"}), ("Q1", "N")]
    legacy = {"comboQuestions": [{"key": code, "value": value} for code, value in pairs]}
    modern = {"answers": [{"questionCode": code, "value": value} for code, value in pairs]}
    assert normalize_answers(legacy) == normalize_answers(modern)


def test_non_mapping_items_are_skipped():
    records = normalize_answers({"answers": ["Q1", None, {"questionCode": "Q2", "value": 3}]})
    assert _pairs(records) == [("Q2", 3)]


def test_non_mapping_block_yields_empty_list():
    assert normalize_answers(["Q1"]) == []


def test_entries_without_code_are_kept_with_none():
    records = normalize_answers({"answers": [{"value": "orphan"}]})
    assert _pairs(records) == [(None, "orphan")]
