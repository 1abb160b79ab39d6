from video_notes.normalizer import SUMMARY_PLACEHOLDER, extract_object, normalize


class TestStructuredPath:
    def test_object_embedded_in_prose(self):
        raw = 'Sure! Here it is:\n{"summary": "Short.", "notes": "# Notes\\n- a"}\nHope that helps.'
        result = normalize(raw)
        assert result.summary == "Short."
        assert result.notes == "# Notes\n- a"
        assert result.transcript is None

    def test_code_fenced_object_with_transcript(self):
        raw = '```json\n{"transcript": "word for word", "summary": "S", "notes": "N"}\n```'
        result = normalize(raw)
        assert (result.summary, result.notes, result.transcript) == ("S", "N", "word for word")

    def test_span_is_greedy_first_to_last_brace(self):
        raw = 'x {"summary": "S", "notes": "uses {braces} inside"} y'
        assert extract_object(raw) == {"summary": "S", "notes": "uses {braces} inside"}

    def test_non_string_values_are_coerced(self):
        raw = '{"summary": "S", "notes": ["- one", "- two"], "transcript": ""}'
        result = normalize(raw)
        assert result.notes == "- one\n- two"
        assert result.transcript is None

    def test_missing_summary_gets_placeholder(self):
        result = normalize('{"notes": "only notes"}')
        assert result.summary == SUMMARY_PLACEHOLDER
        assert result.notes == "only notes"


class TestDegradedPath:
    def test_plain_text_is_kept_as_notes(self):
        raw = "The model ignored the format and wrote plain markdown.\n- point"
        result = normalize(raw)
        assert result.summary == SUMMARY_PLACEHOLDER
        assert result.notes == raw
        assert result.transcript is None

    def test_broken_json_never_raises(self):
        raw = '{"summary": "unterminated, "notes": }'
        result = normalize(raw)
        assert result.notes == raw

    def test_json_array_is_not_an_object(self):
        raw = '[{"summary": "S"}]'
        assert extract_object(raw) == {"summary": "S"}
        assert normalize("[1, 2, 3]").notes == "[1, 2, 3]"

    def test_empty_output(self):
        result = normalize("")
        assert result.summary == SUMMARY_PLACEHOLDER
        assert result.notes == ""
