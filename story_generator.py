"""
Story writing on top of the chat completion model chain.
"""

import json
import logging
import re

from openai_service import ModelFallbackError, complete_with_fallback, strip_code_fence

logger = logging.getLogger(__name__)

STORY_SYSTEM_PROMPT = (
    "You are a children's book author specializing in creating rich, immersive stories about pets. "
    "You excel at incorporating contextual details like holidays, seasons, and special occasions into your narratives."
)

DEFAULT_EDIT_STYLE = 'more engaging'

_TITLE_RE = re.compile(r'title["\']?\s*:\s*["\']([^"\']+)["\']', re.IGNORECASE)
_PAGE_TEXT_RE = re.compile(r'text["\']?\s*:\s*["\']([^"\']+)["\']', re.IGNORECASE)


def describe_photo(photo, index):
    """One prompt line per photo, adding whatever context the analysis found."""
    breed = photo.get('petBreed') or ''
    description = (
        f"Photo {index + 1}: {photo.get('petType', 'pet')} {breed} "
        f"{photo.get('activity', 'posing')} at {photo.get('location', 'unknown')}."
    )
    for label, key in (('Holiday', 'holiday'), ('Occasion', 'occasion'), ('Mood', 'mood'),
                       ('Outfit', 'outfit'), ('People', 'people'), ('Objects', 'objects')):
        if photo.get(key):
            description += f" {label}: {photo[key]}."
    if photo.get('sceneDescription'):
        description += f" Scene: {photo['sceneDescription']}"
    return description


def build_story_prompt(theme, pet_info, owner_info):
    photos = theme.get('photos') or []
    pet_name = pet_info.get('name') or 'our pet'
    pet_type = pet_info.get('type') or (photos[0].get('petType') if photos else 'pet')
    contextual_theme = theme.get('holiday') or theme.get('occasion') or theme.get('context') or theme.get('name')
    photo_descriptions = '\n'.join(describe_photo(photo, i) for i, photo in enumerate(photos))

    extra_lines = []
    if theme.get('holiday'):
        extra_lines.append(f"Holiday: {theme['holiday']}")
    if theme.get('occasion'):
        extra_lines.append(f"Special occasion: {theme['occasion']}")

    return f"""
Write a rich, detailed children's storybook narrative about a pet's adventure.

Pet info:
- Name: {pet_name}
- Type: {pet_type}

Owner info:
- Name: {owner_info.get('name') or 'the owner'}

Theme: {contextual_theme}
Main location: {theme.get('location', 'unknown')}
Main activity: {theme.get('mainActivity', 'playing')}
{chr(10).join(extra_lines)}

Photo details:
{photo_descriptions}

Create a storybook with:
1. A title that captures the theme (e.g., "{pet_name}'s Christmas Adventure" or "{pet_name}'s Birthday Celebration")
2. One page of narrative text per photo (about 1-2 short sentences each, suitable for a children's book)
3. A brief conclusion

Make maximum use of the contextual details provided. If holiday elements like Christmas trees, presents, or decorations are mentioned, incorporate them into the story. If there are special outfits or costumes, mention them.

Return as JSON with this structure:
{{
  "title": "Story title",
  "pages": [
    {{ "text": "Page 1 text" }},
    {{ "text": "Page 2 text" }}
  ]
}}

Make the story cute, simple, and engaging for children, written in present tense. Use the pet's name frequently.
"""


def normalize_pages(pages):
    """Coerce model output into [{'text': str}]: strings are wrapped, other non-dicts dropped."""
    normalized = []
    for page in pages:
        if isinstance(page, str):
            normalized.append({'text': page})
        elif isinstance(page, dict):
            text = page.get('text')
            normalized.append({'text': '' if text is None else str(text)})
    return normalized


def parse_story_response(content, pet_name):
    """
    Parse a story reply into {title, pages: [{text}]}.

    Tries JSON first, then title/text regexes, then treats each paragraph
    as a page.
    """
    try:
        story = json.loads(strip_code_fence(content))
    except (json.JSONDecodeError, TypeError):
        logger.warning("Story response not in JSON format, attempting to parse manually")
    else:
        if isinstance(story, dict) and isinstance(story.get('pages'), list):
            pages = normalize_pages(story['pages'])
            if pages:
                title = story.get('title')
                return {'title': str(title) if title else f"{pet_name}'s Adventure", 'pages': pages}
        logger.warning("Story JSON has no usable pages, attempting to parse manually")

    title_match = _TITLE_RE.search(content)
    title = title_match.group(1) if title_match else f"{pet_name}'s Adventure"
    pages = [{'text': match} for match in _PAGE_TEXT_RE.findall(content)]

    if not pages:
        paragraphs = [p for p in content.split('\n\n') if p.strip()]
        pages = [{'text': p} for p in paragraphs]

    return {'title': title, 'pages': pages}


def minimal_story(theme, pet_info):
    name = pet_info.get('name') or 'Our pet'
    pet_type = pet_info.get('type') or 'pet'
    return {
        'title': f"{name}'s {theme.get('name') or 'Adventure'}",
        'pages': [
            {'text': f"Once upon a time, there was a {pet_type} named {name} who went on an adventure."},
            {'text': f"{name} had a wonderful time exploring and playing."},
            {'text': f"At the end of the day, {name} returned home, happy and tired."}
        ]
    }


def generate_story_with_fallback(theme, pet_info, owner_info, models=None):
    """
    Write a story for a theme.

    Args:
        theme: Theme dict from group_photos_by_theme()
        pet_info: {name, type}
        owner_info: {name}
        models: Optional model chain override

    Returns:
        dict: {title, pages: [{text}]}. When every model is unavailable a
        short three-page story is returned instead.
    """
    pet_info = pet_info or {}
    owner_info = owner_info or {}
    prompt = build_story_prompt(theme, pet_info, owner_info)

    try:
        content, model = complete_with_fallback(
            [
                {"role": "system", "content": STORY_SYSTEM_PROMPT},
                {"role": "user", "content": prompt}
            ],
            max_tokens=1500,
            temperature=0.7,
            models=models
        )
    except ModelFallbackError:
        logger.error("All models failed for story generation")
        return minimal_story(theme, pet_info)

    logger.info("Story generated with model %s", model)
    return parse_story_response(content, pet_info.get('name') or 'Our pet')


def edit_story_style_with_fallback(story_text, style=DEFAULT_EDIT_STYLE, models=None):
    """Rewrite a passage in the requested style; returns the original on total failure."""
    prompt = f"""
Edit this children's story text to make it {style or DEFAULT_EDIT_STYLE}:

"{story_text}"

Keep approximately the same length and maintain child-friendly language.
"""
    try:
        content, _ = complete_with_fallback(
            [{"role": "user", "content": prompt}],
            max_tokens=500,
            temperature=0.7,
            models=models
        )
    except ModelFallbackError:
        logger.error("All models failed for story editing")
        return story_text

    return content.strip() or story_text


def validate_story(story):
    """
    Check a story is ready for the preview.

    Returns:
        tuple: (is_valid: bool, error_message: str)
    """
    if not story or not (story.get('title') or '').strip():
        return False, "Please complete all pages before continuing"
    pages = story.get('pages') or []
    if not pages or any(not (page.get('text') or '').strip() for page in pages):
        return False, "Please complete all pages before continuing"
    return True, ""
