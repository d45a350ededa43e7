import threading
import time
from unittest.mock import patch

import photo_analysis
from photo_analysis import (
    analyze_photo, analyze_photos, find_most_common, generate_theme_id,
    group_photos_by_theme, run_in_batches, strip_data_url,
)


def photo(photo_id, **fields):
    record = {'id': photo_id, 'petType': 'dog', 'location': 'home', 'activity': 'sleeping'}
    record.update(fields)
    return record


class TestFindMostCommon:
    def test_picks_highest_count(self):
        assert find_most_common(['park', 'beach', 'park']) == 'park'

    def test_tie_goes_to_first_to_reach_count(self):
        assert find_most_common(['beach', 'park', 'park', 'beach']) == 'park'

    def test_empty_is_unknown(self):
        assert find_most_common([]) == 'unknown'


def test_generate_theme_id_collapses_whitespace():
    assert generate_theme_id('Home  Sweet Home') == 'home-sweet-home'


def test_strip_data_url():
    assert strip_data_url('data:image/jpeg;base64,AAAA') == 'AAAA'
    assert strip_data_url('AAAA') == 'AAAA'


class TestGroupPhotosByTheme:
    def test_holiday_beats_occasion_and_location(self):
        themes = group_photos_by_theme([
            photo('1', holiday='Christmas', occasion='birthday', outfit='Red Sweater'),
            photo('2', holiday='christmas'),
        ])

        assert len(themes) == 1
        theme = themes[0]
        assert theme['name'] == 'Christmas Celebration'
        assert theme['id'] == 'christmas-celebration'
        assert theme['context'] == 'Christmas celebration with red sweater'
        assert theme['holiday'] == 'christmas'
        assert theme['occasion'] == 'birthday'
        assert [p['id'] for p in theme['photos']] == ['1', '2']

    def test_occasion_theme(self):
        themes = group_photos_by_theme([photo('1', occasion='Birthday')])

        assert themes[0]['name'] == 'Birthday Event'
        assert themes[0]['context'] == 'Birthday celebration'
        assert themes[0]['holiday'] is None

    def test_location_names(self):
        themes = group_photos_by_theme([
            photo('1', location='Living Room'),
            photo('2', location='park', mood='Playful'),
            photo('3', location='beach'),
            photo('4', location='apple orchard', activity='Sniffing'),
        ])

        names = [t['name'] for t in themes]
        assert names == ['Home Sweet Home', 'Outdoor Adventure', 'Beach Day', 'Apple orchard Adventure']
        assert themes[0]['context'] == 'Time spent at the living room'
        assert themes[1]['context'] == 'A playful time at the park'
        assert themes[3]['mainActivity'] == 'sniffing'

    def test_group_order_is_holiday_then_occasion_then_location(self):
        themes = group_photos_by_theme([
            photo('1', location='beach'),
            photo('2', occasion='wedding'),
            photo('3', holiday='halloween'),
        ])

        assert [t['name'] for t in themes] == ['Halloween Celebration', 'Wedding Event', 'Beach Day']

    def test_empty_strings_count_as_absent(self):
        themes = group_photos_by_theme([photo('1', holiday='', occasion='', location='garden')])

        assert themes[0]['name'] == 'Outdoor Adventure'

    def test_theme_ids_stay_unique(self):
        themes = group_photos_by_theme([
            photo('1', location='home'),
            photo('2', location='house'),
        ])

        assert [t['name'] for t in themes] == ['Home Sweet Home', 'Home Sweet Home']
        assert [t['id'] for t in themes] == ['home-sweet-home', 'home-sweet-home-2']

    def test_no_photos(self):
        assert group_photos_by_theme([]) == []


class TestAnalyzePhoto:
    def test_returns_vision_result(self):
        with patch.object(photo_analysis, 'analyze_image_with_vision', return_value={'petType': 'cat'}) as vision:
            assert analyze_photo('AAAA') == {'petType': 'cat'}
        assert vision.call_args[0][0] == 'AAAA'
        assert 'sceneDescription' in vision.call_args[0][1]

    def test_failure_returns_fallback(self):
        with patch.object(photo_analysis, 'analyze_image_with_vision', side_effect=RuntimeError('boom')):
            result = analyze_photo('AAAA')

        assert result['petType'] == 'pet'
        assert result['location'] == 'unknown'
        assert result['activity'] == 'posing'
        assert result['error'] == 'boom'

    def test_non_object_response_returns_fallback(self):
        with patch.object(photo_analysis, 'analyze_image_with_vision', return_value=['not', 'a', 'dict']):
            result = analyze_photo('AAAA')

        assert result['petType'] == 'pet'
        assert 'error' in result


class TestAnalyzePhotos:
    def test_keeps_order_and_attaches_ids(self):
        def fake_vision(image_base64, prompt):
            return {'petType': 'dog', 'location': image_base64, 'activity': 'running'}

        photos = [{'id': str(i), 'base64': f'data:image/jpeg;base64,IMG{i}'} for i in range(5)]
        with patch.object(photo_analysis, 'analyze_image_with_vision', side_effect=fake_vision):
            results = analyze_photos(photos, batch_size=2)

        assert [r['id'] for r in results] == ['0', '1', '2', '3', '4']
        assert [r['location'] for r in results] == ['IMG0', 'IMG1', 'IMG2', 'IMG3', 'IMG4']
        assert results[0]['originalImage'] == 'data:image/jpeg;base64,IMG0'

    def test_bad_photo_record_gets_error(self):
        results = analyze_photos([{'id': 'x'}], batch_size=2)

        assert results[0]['id'] == 'x'
        assert results[0]['error'].startswith('Failed to analyze')


def test_run_in_batches_limits_concurrency():
    lock = threading.Lock()
    state = {'active': 0, 'peak': 0}

    def worker(item):
        with lock:
            state['active'] += 1
            state['peak'] = max(state['peak'], state['active'])
        time.sleep(0.02)
        with lock:
            state['active'] -= 1
        return item * 10

    assert run_in_batches([1, 2, 3, 4, 5], worker, batch_size=2) == [10, 20, 30, 40, 50]
    assert state['peak'] <= 2
