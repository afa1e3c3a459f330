"""Prompt building and column extraction tests."""

import pytest

from extraction import (
    DEFAULT_SYSTEM_PROMPT,
    PROMPT_TEMPLATES,
    ErrorKind,
    InputError,
    RowResult,
    RowTask,
    build_messages,
    build_user_prompt,
    clean_rows,
    extract_column,
    resolve_system_prompt,
)


class TestPrompts:
    """User and system prompt construction."""

    def test_user_prompt_contains_text(self):
        prompt = build_user_prompt("患者有高血压")
        assert prompt == "请分析以下文本，提取其中的病种名称：\n\n文本：患者有高血压"

    def test_extra_requirements_appended(self):
        prompt = build_user_prompt("患者有高血压", "只输出慢性病")
        assert prompt.endswith("\n\n额外要求：只输出慢性病")

    def test_blank_extra_requirements_ignored(self):
        assert "额外要求" not in build_user_prompt("文本", "   ")

    def test_messages_default_system_prompt(self):
        messages = build_messages("文本")
        assert messages[0] == {"role": "system", "content": DEFAULT_SYSTEM_PROMPT}
        assert messages[1]["role"] == "user"

    def test_explicit_prompt_beats_template(self):
        assert resolve_system_prompt("custom", "strict") == "custom"

    def test_template_lookup(self):
        assert resolve_system_prompt(None, "icd") == PROMPT_TEMPLATES["icd"]

    def test_unknown_template(self):
        with pytest.raises(ValueError, match="Unknown prompt template"):
            resolve_system_prompt(None, "nope")


class TestColumnExtraction:
    """Header lookup and blank filtering."""

    def test_extracts_named_column(self):
        table = [["id", "诊断"], [1, "高血压"], [2, "糖尿病"]]
        assert extract_column(table, "诊断") == ["高血压", "糖尿病"]

    def test_blank_and_missing_cells_skipped(self):
        table = [["id", "诊断"], [1, "  "], [2], [3, None], [4, "肺炎"]]
        assert extract_column(table, "诊断") == ["肺炎"]

    def test_header_only_table(self):
        with pytest.raises(InputError):
            extract_column([["诊断"]], "诊断")

    def test_unknown_column(self):
        with pytest.raises(InputError, match="未找到列名: 病史"):
            extract_column([["诊断"], ["肺炎"]], "病史")

    def test_column_without_data(self):
        with pytest.raises(InputError, match="没有有效数据"):
            extract_column([["诊断"], [""], [None]], "诊断")

    def test_clean_rows_keeps_original_text(self):
        assert clean_rows([" 高血压 ", "", "\n"]) == [" 高血压 "]


class TestRowTypes:
    """RowTask validation and legacy result decoding."""

    def test_blank_row_text_rejected(self):
        with pytest.raises(ValueError):
            RowTask(index=0, text="   ")

    def test_row_result_is_frozen(self):
        result = RowResult(index=0, original_text="x")
        with pytest.raises(Exception):
            result.index = 1

    def test_from_legacy_success_event(self):
        result = RowResult.from_legacy_event({
            "type": "result",
            "index": 3,
            "originalText": "高血压",
            "diseases": ["高血压"],
            "processingTime": 120,
        })
        assert result.index == 2
        assert result.succeeded
        assert result.diseases == ["高血压"]
        assert result.processing_time_ms == 120

    def test_from_legacy_failure_event(self):
        result = RowResult.from_legacy_event({
            "type": "result",
            "index": 1,
            "originalText": "x",
            "diseases": [],
            "error": "LLM_TIMEOUT: LLM API timeout after 15s",
            "errorType": "LLM_TIMEOUT",
        })
        assert result.error == ErrorKind.LLM_TIMEOUT.value
        assert result.error_message == "LLM API timeout after 15s"
        assert result.retryable

    def test_from_legacy_unknown_error_text(self):
        result = RowResult.from_legacy_event({"index": 1, "originalText": "x", "error": "boom"})
        assert result.error == ErrorKind.UNKNOWN.value
        assert result.error_message == "boom"
