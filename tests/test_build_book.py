from unittest.mock import patch

import pytest

import build_book
import photo_analysis
from conftest import make_image_bytes

STORY = {'title': 'Luna at the Beach', 'pages': [{'text': 'Luna splashes.'}, {'text': 'Luna naps.'}]}


def fake_vision(image_base64, prompt):
    return {'petType': 'cat', 'location': 'beach', 'activity': 'splashing'}


@pytest.fixture
def photo_dir(tmp_path):
    (tmp_path / 'b.jpg').write_bytes(make_image_bytes(color=(10, 10, 10)))
    (tmp_path / 'a.png').write_bytes(make_image_bytes(color=(250, 250, 250), fmt='PNG'))
    (tmp_path / 'notes.txt').write_text('not a photo')
    (tmp_path / 'broken.jpg').write_bytes(b'not really a jpeg')
    return tmp_path


def test_load_photos_skips_unusable_files(photo_dir):
    photos = build_book.load_photos(str(photo_dir))

    assert len(photos) == 2
    assert all(p['base64'].startswith('data:image/jpeg;base64,') for p in photos)


def test_build_book_writes_pdf(photo_dir, tmp_path):
    output = tmp_path / 'luna.pdf'

    with patch.object(photo_analysis, 'analyze_image_with_vision', side_effect=fake_vision), \
            patch.object(build_book, 'generate_story_with_fallback', return_value=STORY) as generate:
        result = build_book.build_book(str(photo_dir), 'Luna', pet_type='cat', output_path=str(output))

    assert result == {'title': 'Luna at the Beach', 'theme': 'Beach Day', 'pages': 2, 'output_path': str(output)}
    assert output.read_bytes().startswith(b'%PDF')
    assert generate.call_args[0][1] == {'name': 'Luna', 'type': 'cat'}


def test_build_book_bad_theme_index(photo_dir):
    with patch.object(photo_analysis, 'analyze_image_with_vision', side_effect=fake_vision):
        with pytest.raises(ValueError, match='out of range'):
            build_book.build_book(str(photo_dir), 'Luna', theme_index=3)


def test_main_reports_failure(tmp_path):
    assert build_book.main([str(tmp_path), '--pet-name', 'Luna']) == 1


def test_parse_args_rejects_unknown_style():
    with pytest.raises(SystemExit):
        build_book.parse_args(['photos', '--pet-name', 'Luna', '--style', 'oil-painting'])
