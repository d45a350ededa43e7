from unittest.mock import patch

import story_generator
from openai_service import ModelFallbackError
from story_generator import (
    build_story_prompt, describe_photo, edit_story_style_with_fallback,
    generate_story_with_fallback, parse_story_response, validate_story,
)

THEME = {
    'id': 'christmas-celebration',
    'name': 'Christmas Celebration',
    'location': 'living room',
    'mainActivity': 'unwrapping presents',
    'context': 'Christmas celebration with matching sweaters',
    'holiday': 'christmas',
    'occasion': None,
    'photos': [
        {'id': '1', 'petType': 'dog', 'petBreed': 'corgi', 'activity': 'unwrapping presents',
         'location': 'living room', 'holiday': 'Christmas', 'outfit': 'red sweater',
         'sceneDescription': 'A corgi beside a glowing tree'},
        {'id': '2', 'petType': 'dog', 'activity': 'napping', 'location': 'sofa'},
    ],
}


def test_describe_photo_includes_context():
    line = describe_photo(THEME['photos'][0], 0)

    assert line.startswith('Photo 1: dog corgi unwrapping presents at living room.')
    assert 'Holiday: Christmas.' in line
    assert 'Outfit: red sweater.' in line
    assert line.endswith('Scene: A corgi beside a glowing tree')
    assert 'Mood' not in line


def test_build_story_prompt():
    prompt = build_story_prompt(THEME, {'name': 'Biscuit'}, {})

    assert '- Name: Biscuit' in prompt
    # Pet type falls back to the first photo's analysis
    assert '- Type: dog' in prompt
    assert '- Name: the owner' in prompt
    assert 'Theme: christmas' in prompt
    assert 'Holiday: christmas' in prompt
    assert 'Photo 2: dog  napping at sofa.' in prompt


class TestParseStoryResponse:
    def test_fenced_json(self):
        content = '```json\n{"title": "Biscuit Saves Christmas", "pages": [{"text": "Biscuit wakes up."}]}\n```'

        story = parse_story_response(content, 'Biscuit')

        assert story == {'title': 'Biscuit Saves Christmas', 'pages': [{'text': 'Biscuit wakes up.'}]}

    def test_regex_fallback(self):
        content = 'title: "A Snowy Day"\npage one text: "Biscuit runs outside."\npage two text: "Biscuit naps."'

        story = parse_story_response(content, 'Biscuit')

        assert story['title'] == 'A Snowy Day'
        assert story['pages'] == [{'text': 'Biscuit runs outside.'}, {'text': 'Biscuit naps.'}]

    def test_string_pages_are_wrapped(self):
        story = parse_story_response('{"title": "T", "pages": ["One.", {"text": "Two."}, 3, {"text": null}]}', 'Biscuit')

        assert story == {'title': 'T', 'pages': [{'text': 'One.'}, {'text': 'Two.'}, {'text': ''}]}

    def test_pages_not_a_list_falls_back(self):
        story = parse_story_response('{"pages": "Biscuit runs."}', 'Biscuit')

        assert story['title'] == "Biscuit's Adventure"
        assert story['pages'] == [{'text': '{"pages": "Biscuit runs."}'}]

    def test_missing_title_gets_default(self):
        story = parse_story_response('{"pages": [{"text": "Biscuit runs."}]}', 'Biscuit')

        assert story == {'title': "Biscuit's Adventure", 'pages': [{'text': 'Biscuit runs.'}]}

    def test_paragraph_fallback(self):
        story = parse_story_response('Biscuit wakes up early.\n\nBiscuit finds a present.\n\n', 'Biscuit')

        assert story['title'] == "Biscuit's Adventure"
        assert story['pages'] == [{'text': 'Biscuit wakes up early.'}, {'text': 'Biscuit finds a present.'}]


class TestGenerateStoryWithFallback:
    def test_parses_model_output(self):
        reply = '{"title": "Biscuit and the Tree", "pages": [{"text": "One"}, {"text": "Two"}, {"text": "The end"}]}'
        with patch.object(story_generator, 'complete_with_fallback', return_value=(reply, 'gpt-4o')) as complete:
            story = generate_story_with_fallback(THEME, {'name': 'Biscuit', 'type': 'dog'}, {'name': 'Sam'})

        assert story['title'] == 'Biscuit and the Tree'
        assert len(story['pages']) == 3
        messages = complete.call_args[0][0]
        assert messages[0]['role'] == 'system'
        assert '- Name: Sam' in messages[1]['content']
        assert complete.call_args.kwargs['max_tokens'] == 1500

    def test_all_models_unavailable_returns_minimal_story(self):
        with patch.object(story_generator, 'complete_with_fallback', side_effect=ModelFallbackError('none')):
            story = generate_story_with_fallback(THEME, {'name': 'Biscuit', 'type': 'dog'}, {})

        assert story['title'] == "Biscuit's Christmas Celebration"
        assert len(story['pages']) == 3
        assert story['pages'][0]['text'].startswith('Once upon a time, there was a dog named Biscuit')


class TestEditStoryStyle:
    def test_returns_edited_text(self):
        with patch.object(story_generator, 'complete_with_fallback', return_value=('  Zoom! Biscuit dashes!  ', 'gpt-4o')) as complete:
            assert edit_story_style_with_fallback('Biscuit runs.', 'more exciting') == 'Zoom! Biscuit dashes!'
        assert 'make it more exciting' in complete.call_args[0][0][0]['content']

    def test_empty_reply_keeps_original(self):
        with patch.object(story_generator, 'complete_with_fallback', return_value=('', 'gpt-4o')):
            assert edit_story_style_with_fallback('Biscuit runs.') == 'Biscuit runs.'

    def test_all_models_unavailable_keeps_original(self):
        with patch.object(story_generator, 'complete_with_fallback', side_effect=ModelFallbackError('none')):
            assert edit_story_style_with_fallback('Biscuit runs.', 'funny') == 'Biscuit runs.'


def test_validate_story():
    assert validate_story({'title': 'T', 'pages': [{'text': 'a'}]}) == (True, '')
    assert validate_story({'title': ' ', 'pages': [{'text': 'a'}]})[0] is False
    assert validate_story({'title': 'T', 'pages': [{'text': 'a'}, {'text': ''}]})[0] is False
    assert validate_story({'title': 'T', 'pages': []})[0] is False
