"""Tests for review result extraction and score normalization."""

import json

import pytest

from ticket_to_pr.core.parsing import (
    ResultSource,
    clamp_score,
    extract_review_result,
    normalize_review_output,
    scrape_json_from_text,
)


class TestClampScore:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (7, 7),
            (15, 10),
            (-3, 1),
            (0, 1),
            (6.6, 7),
            ("8", 8),
            ("abc", 5),
            (None, 5),
            (float("nan"), 5),
            (True, 5),
        ],
    )
    def test_clamp(self, value, expected):
        assert clamp_score(value) == expected


class TestExtraction:
    def test_structured_output_wins(self):
        text = '```json\n{"easeScore": 2}\n```'
        extracted = extract_review_result({"easeScore": 9}, text)
        assert extracted.source is ResultSource.STRUCTURED
        assert extracted.trusted
        assert extracted.data == {"easeScore": 9}

    def test_last_fenced_block(self):
        text = (
            "Draft:\n```json\n{\"easeScore\": 2}\n```\n"
            "Final:\n```json\n{\"easeScore\": 8, \"confidenceScore\": 6}\n```\n"
        )
        extracted = extract_review_result(None, text)
        assert extracted.source is ResultSource.FENCED_BLOCK
        assert not extracted.trusted
        assert extracted.data["easeScore"] == 8

    def test_whole_text(self):
        extracted = scrape_json_from_text(json.dumps({"easeScore": 4}))
        assert extracted.source is ResultSource.WHOLE_TEXT
        assert extracted.data == {"easeScore": 4}

    def test_regex_scrape(self):
        text = 'Here you go: {"easeScore": 3, "spec": "do it"} hope that helps'
        extracted = scrape_json_from_text(text)
        assert extracted.source is ResultSource.REGEX_SCRAPE
        assert extracted.data["spec"] == "do it"

    def test_unparseable_fenced_block_falls_through(self):
        text = '```json\nnot json\n```\n{"easeScore": 6}'
        extracted = scrape_json_from_text(text)
        assert extracted.source is ResultSource.REGEX_SCRAPE
        assert extracted.data == {"easeScore": 6}

    def test_nothing_found(self):
        assert scrape_json_from_text("I could not finish the review.") is None
        assert extract_review_result(None, None) is None
        assert extract_review_result(None, "") is None

    def test_json_array_is_not_a_result(self):
        assert scrape_json_from_text("[1, 2, 3]") is None


class TestNormalize:
    def test_full_payload(self):
        results = normalize_review_output({
            "easeScore": 12,
            "confidenceScore": "7",
            "spec": "Do the thing",
            "impactReport": "Small",
            "affectedFiles": ["a.py", "b.py"],
            "risks": "None really",
        })
        assert results.ease_score == 10
        assert results.confidence_score == 7
        assert results.spec == "Do the thing"
        assert results.affected_files == ["a.py", "b.py"]
        assert results.risks == "None really"

    def test_missing_fields(self):
        results = normalize_review_output({})
        assert results.ease_score == 5
        assert results.confidence_score == 5
        assert results.spec == ""
        assert results.impact_report == ""
        assert results.affected_files == []
        assert results.risks is None

    def test_affected_files_not_a_list(self):
        results = normalize_review_output({"affectedFiles": "a.py"})
        assert results.affected_files == []
