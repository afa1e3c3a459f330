"""DiseaseParser Tests

The parser is the contract between free-form LLM replies and the disease
lists shown to the user, so every rule gets a concrete reply here.
"""

import pytest

from extraction import DiseaseParser, parse_diseases


class TestNoneFound:
    """Replies that mean "no diseases" must yield an empty list."""

    def test_exact_sentinel(self):
        assert parse_diseases("未识别到病种") == []

    def test_sentinel_with_whitespace(self):
        assert parse_diseases("  未识别到病种\n") == []

    def test_marker_anywhere_in_reply(self):
        assert parse_diseases("文本中未识别到相关疾病") == []

    def test_marker_wins_over_bracketed_list(self):
        assert parse_diseases("[高血压] 其余未识别到") == []

    def test_empty_reply(self):
        assert parse_diseases("") == []
        assert parse_diseases("   ") == []


class TestBracketedList:
    """A [a, b] list is split on commas, trimmed, order preserved."""

    def test_simple_list(self):
        assert parse_diseases("[高血压, 糖尿病]") == ["高血压", "糖尿病"]

    def test_surrounding_text_ignored(self):
        assert parse_diseases("结果：[冠心病, 肺炎]。") == ["冠心病", "肺炎"]

    def test_empty_items_dropped(self):
        assert parse_diseases("[高血压, , 糖尿病,]") == ["高血压", "糖尿病"]

    def test_no_case_normalization(self):
        assert parse_diseases("[COPD, copd]") == ["COPD", "copd"]

    def test_empty_brackets(self):
        assert parse_diseases("[]") == []

    def test_exclusion_markers_not_applied_inside_brackets(self):
        # Only the delimiter fallback filters on exclusion markers
        assert parse_diseases("[无症状心肌缺血]") == ["无症状心肌缺血"]


class TestDelimiterFallback:
    """Without brackets the reply is split on ASCII and full-width delimiters."""

    def test_enumeration_prefix_stripped(self):
        assert parse_diseases("1. 高血压，糖尿病") == ["高血压", "糖尿病"]

    def test_chinese_enumeration_prefix(self):
        assert parse_diseases("1、高血压") == ["高血压"]

    @pytest.mark.parametrize("delimiter", [",", "，", "、", ";", "；"])
    def test_each_delimiter(self, delimiter):
        assert parse_diseases(f"哮喘{delimiter}肺炎") == ["哮喘", "肺炎"]

    def test_segments_with_exclusion_markers_dropped(self):
        assert parse_diseases("高血压；无；未识别病种") == ["高血压"]

    def test_segment_containing_marker_dropped(self):
        # "contains" semantics: a segment that merely mentions 无 is dropped too
        assert parse_diseases("高血压，无明显异常") == ["高血压"]

    def test_single_disease_plain_text(self):
        assert parse_diseases("阿尔茨海默病") == ["阿尔茨海默病"]


class TestConfigurableParser:
    """Markers and delimiters are constructor options."""

    def test_custom_sentinel(self):
        parser = DiseaseParser(none_found_sentinel="NONE", not_found_marker="NOT FOUND")
        assert parser.parse("NONE") == []
        assert parser.parse("diseases NOT FOUND here") == []
        assert parser.parse("[asthma]") == ["asthma"]

    def test_custom_delimiters(self):
        parser = DiseaseParser(delimiters=["|"])
        assert parser.parse("asthma|flu") == ["asthma", "flu"]

    def test_custom_exclude_markers(self):
        parser = DiseaseParser(exclude_markers=["none"])
        assert parser.parse("asthma, none") == ["asthma"]

    def test_deterministic(self):
        parser = DiseaseParser()
        reply = "2. 肺炎、支气管炎"
        assert parser.parse(reply) == parser.parse(reply)
