"""
Photo understanding and theme grouping.

analyze_photo() asks the vision model for a JSON description of a pet photo.
group_photos_by_theme() buckets analyzed photos by holiday, then occasion,
then location, and names each bucket.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor

from openai_service import analyze_image_with_vision

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """
Analyze this photo comprehensively and return detailed information about the scene, focusing on the pet and context.

Please identify as many relevant contextual elements as possible, including but not limited to:
- Pet type, breed, and what it's doing
- Location/setting details (be specific - e.g. "living room with Christmas tree" rather than just "home")
- Activity happening in the scene
- People present and their relationship to the pet
- Notable objects, props, decorations
- Holiday context if any (Christmas, Halloween, etc.)
- Special occasion or event (birthday, wedding, etc.)
- Season or time of year
- Weather conditions if visible
- Time of day
- Mood or atmosphere of the scene
- Clothing or outfits (especially matching or themed outfits)
- Anything unusual or particularly noteworthy

Also include a brief, evocative description of the overall scene that could be used in a storybook.

IMPORTANT: Return ONLY raw JSON with these keys (at minimum):
petType, petBreed, location, activity, people, objects, holiday, occasion, season, mood, outfit, sceneDescription.

Do not include any explanations, markdown formatting, or code blocks.
Your entire response should be valid JSON that can be directly parsed.
"""

LOCATION_THEME_NAMES = {
    'home': 'Home Sweet Home',
    'house': 'Home Sweet Home',
    'living room': 'Home Sweet Home',
    'apartment': 'Home Sweet Home',
    'park': 'Outdoor Adventure',
    'garden': 'Outdoor Adventure',
    'backyard': 'Outdoor Adventure',
    'beach': 'Beach Day',
    'ocean': 'Beach Day',
    'sea': 'Beach Day',
}


def fallback_analysis(error_message=None):
    """Basic record used whenever a photo could not be analyzed."""
    result = {
        'petType': 'pet',
        'location': 'unknown',
        'activity': 'posing',
        'people': '',
        'objects': '',
        'sceneDescription': 'A pet in an everyday scene'
    }
    if error_message:
        result['error'] = error_message
    return result


def strip_data_url(data):
    """Return the base64 payload of a data URL (or the input if it has no prefix)."""
    if data and ',' in data and data.startswith('data:'):
        return data.split(',', 1)[1]
    return data


def analyze_photo(image_base64):
    """
    Analyze a pet photo with the vision model.

    Args:
        image_base64: Raw base64 JPEG data

    Returns:
        dict: Analysis fields (petType, location, activity, holiday, ...).
        Never raises; failures return fallback_analysis() with an 'error'.
    """
    try:
        logger.info("Starting comprehensive photo analysis...")
        result = analyze_image_with_vision(image_base64, ANALYSIS_PROMPT)
        if not isinstance(result, dict):
            raise ValueError(f"Vision response was {type(result).__name__}, expected an object")
        return result
    except Exception as e:
        logger.error("Error analyzing photo: %s", e)
        return fallback_analysis(str(e))


def _analyze_one(photo):
    try:
        result = analyze_photo(strip_data_url(photo['base64']))
        return {**result, 'id': photo.get('id'), 'originalImage': photo['base64']}
    except Exception as e:
        logger.error("Error analyzing photo %s: %s", photo.get('id'), e)
        return {
            **fallback_analysis(f"Failed to analyze: {e}"),
            'id': photo.get('id'),
            'originalImage': photo.get('base64')
        }


def run_in_batches(items, worker, batch_size):
    """
    Apply worker to every item, batch_size at a time.

    Items inside a batch run concurrently; batches run one after another.
    Results keep the input order.
    """
    batch_size = max(1, int(batch_size))
    results = []
    with ThreadPoolExecutor(max_workers=batch_size) as executor:
        for start in range(0, len(items), batch_size):
            batch = items[start:start + batch_size]
            results.extend(executor.map(worker, batch))
    return results


def analyze_photos(photos, batch_size=2):
    """
    Analyze uploaded photos ([{id, base64}]) with a concurrency limit.

    Returns:
        list: One analysis per photo, each carrying 'id' and 'originalImage'
    """
    logger.info("Analyzing %d photos in batches of %d", len(photos), batch_size)
    return run_in_batches(photos, _analyze_one, batch_size)


def find_most_common(values):
    """
    Most frequent value; ties go to whichever value reached the top count first.
    Returns 'unknown' for an empty list.
    """
    counts = {}
    max_count = 0
    most_common = values[0] if values else 'unknown'
    for item in values:
        counts[item] = counts.get(item, 0) + 1
        if counts[item] > max_count:
            max_count = counts[item]
            most_common = item
    return most_common


def capitalize_first_letter(text):
    return text[:1].upper() + text[1:]


def generate_theme_id(theme_name):
    return re.sub(r'\s+', '-', theme_name.lower())


def _lowered(photo, key):
    value = photo.get(key)
    if isinstance(value, str) and value:
        return value.lower()
    return None


def _common_value(photos, key):
    values = [v for v in (_lowered(p, key) for p in photos) if v]
    return find_most_common(values) if values else None


def group_photos_by_theme(analyzed_photos):
    """
    Group analyzed photos into named themes.

    Holiday wins over occasion, occasion wins over location. Within a group
    the location, activity, holiday, occasion, mood and outfit are the most
    common values among its photos.

    Returns:
        list: Theme dicts {id, name, location, mainActivity, context,
        holiday, occasion, photos}
    """
    groups = {}

    holiday_photos = [p for p in analyzed_photos if p.get('holiday')]
    occasion_photos = [p for p in analyzed_photos if p.get('occasion') and not p.get('holiday')]
    remaining_photos = [p for p in analyzed_photos if not p.get('holiday') and not p.get('occasion')]

    logger.info(
        "Grouping photos by context: %d total (%d holiday, %d occasion, %d location-based)",
        len(analyzed_photos), len(holiday_photos), len(occasion_photos), len(remaining_photos)
    )

    for photo in holiday_photos:
        groups.setdefault(f"holiday-{_lowered(photo, 'holiday') or 'unknown'}", []).append(photo)
    for photo in occasion_photos:
        groups.setdefault(f"occasion-{_lowered(photo, 'occasion') or 'unknown'}", []).append(photo)
    for photo in remaining_photos:
        groups.setdefault(f"location-{_lowered(photo, 'location') or 'unknown'}", []).append(photo)

    themes = []
    used_ids = set()
    for group_key, photos in groups.items():
        main_location = find_most_common([_lowered(p, 'location') or 'unknown' for p in photos])
        main_activity = find_most_common([_lowered(p, 'activity') or 'posing' for p in photos])
        holiday = _common_value(photos, 'holiday')
        occasion = _common_value(photos, 'occasion')
        common_mood = _common_value(photos, 'mood')
        common_outfit = _common_value(photos, 'outfit')
        outfit_suffix = f" with {common_outfit}" if common_outfit else ''

        if group_key.startswith('holiday-'):
            holiday_name = capitalize_first_letter(holiday or 'Holiday')
            theme_name = f"{holiday_name} Celebration"
            context = f"{holiday_name} celebration{outfit_suffix}"
        elif group_key.startswith('occasion-'):
            occasion_name = capitalize_first_letter(occasion or 'Special Occasion')
            theme_name = f"{occasion_name} Event"
            context = f"{occasion_name} celebration{outfit_suffix}"
        else:
            theme_name = LOCATION_THEME_NAMES.get(
                main_location, f"{capitalize_first_letter(main_location)} Adventure"
            )
            if common_mood:
                context = f"A {common_mood} time at the {main_location}"
            else:
                context = f"Time spent at the {main_location}"

        # home/house/apartment all map to one name; keep ids distinct for selection
        theme_id = generate_theme_id(theme_name)
        suffix = 2
        while theme_id in used_ids:
            theme_id = f"{generate_theme_id(theme_name)}-{suffix}"
            suffix += 1
        used_ids.add(theme_id)

        logger.info("Created theme %r from %s (%d photos)", theme_name, group_key, len(photos))
        themes.append({
            'id': theme_id,
            'name': theme_name,
            'location': main_location,
            'mainActivity': main_activity,
            'context': context,
            'holiday': holiday,
            'occasion': occasion,
            'photos': photos
        })

    logger.info("Generated %d unique themes from %d photos", len(themes), len(analyzed_photos))
    return themes
