import pytest

from conftest import chat_response
from openai_service import (
    ModelFallbackError, analyze_image_with_vision, complete_with_fallback,
    extract_field, is_model_unavailable_error, mask_api_key,
    parse_vision_response, strip_code_fence,
)


def test_mask_api_key():
    assert mask_api_key('sk-abcdefghijklmnop1234') == 'sk-ab...1234'
    assert mask_api_key(None) == 'MISSING'


def test_strip_code_fence():
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('{"a": 1}') == '{"a": 1}'


def test_is_model_unavailable_error():
    assert is_model_unavailable_error(Exception('Error code: 404 - model not found'))
    assert is_model_unavailable_error(Exception('image input not supported'))
    assert not is_model_unavailable_error(Exception('rate limit exceeded'))


class TestExtractField:
    def test_json_string_value(self):
        assert extract_field('{"location": "snowy park", "x": 1}', 'location', 'unknown') == 'snowy park'

    def test_json_bare_value(self):
        assert extract_field('{"petType": dog, "x": 1}', 'petType', 'pet') == 'dog'

    def test_free_text(self):
        assert extract_field('Location: backyard garden\nActivity: digging', 'location', 'unknown') == 'backyard garden'

    def test_missing_returns_default(self):
        assert extract_field('nothing useful here', 'holiday', '') == ''
        assert extract_field('', 'holiday', 'none') == 'none'


class TestParseVisionResponse:
    def test_plain_json(self):
        assert parse_vision_response('{"petType": "cat", "location": "sofa"}') == {'petType': 'cat', 'location': 'sofa'}

    def test_fenced_json(self):
        content = 'Here you go:\n```json\n{"petType": "dog", "holiday": "Halloween"}\n```'
        assert parse_vision_response(content) == {'petType': 'dog', 'holiday': 'Halloween'}

    def test_free_text_falls_back_to_field_extraction(self):
        result = parse_vision_response('petType: cat\nlocation: beach\nactivity: running')

        assert result['petType'] == 'cat'
        assert result['location'] == 'beach'
        assert result['activity'] == 'running'
        assert result['holiday'] == ''
        assert result['sceneDescription'] == 'A pet in an everyday scene'


class TestAnalyzeImageWithVision:
    def test_falls_through_failing_models(self, mock_openai):
        mock_openai.chat.completions.create.side_effect = [
            RuntimeError('model down'),
            chat_response('{"petType": "dog", "location": "park"}'),
        ]

        result = analyze_image_with_vision('AAAA', 'describe', models=['first', 'second', 'third'])

        assert result == {'petType': 'dog', 'location': 'park'}
        calls = mock_openai.chat.completions.create.call_args_list
        assert [c.kwargs['model'] for c in calls] == ['first', 'second']
        image_part = calls[1].kwargs['messages'][1]['content'][1]
        assert image_part['image_url']['url'] == 'data:image/jpeg;base64,AAAA'
        assert calls[1].kwargs['temperature'] == 0.2

    def test_all_models_failing_raises(self, mock_openai):
        mock_openai.chat.completions.create.side_effect = RuntimeError('down')

        with pytest.raises(ModelFallbackError):
            analyze_image_with_vision('AAAA', 'describe', models=['a', 'b'])
        assert mock_openai.chat.completions.create.call_count == 2


class TestCompleteWithFallback:
    def test_unavailable_model_moves_on(self, mock_openai):
        mock_openai.chat.completions.create.side_effect = [
            Exception('Error code: 404 - The model does not exist'),
            chat_response('Once upon a time'),
        ]

        content, model = complete_with_fallback([], max_tokens=10, temperature=0.7, models=['gpt-x', 'gpt-y'])

        assert content == 'Once upon a time'
        assert model == 'gpt-y'

    def test_other_errors_propagate(self, mock_openai):
        mock_openai.chat.completions.create.side_effect = Exception('invalid api key')

        with pytest.raises(Exception, match='invalid api key'):
            complete_with_fallback([], max_tokens=10, temperature=0.7, models=['gpt-x', 'gpt-y'])
        assert mock_openai.chat.completions.create.call_count == 1

    def test_all_unavailable_raises_fallback_error(self, mock_openai):
        mock_openai.chat.completions.create.side_effect = Exception('404 not found')

        with pytest.raises(ModelFallbackError):
            complete_with_fallback([], max_tokens=10, temperature=0.7, models=['a', 'b'])
