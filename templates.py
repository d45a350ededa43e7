"""
Inline Jinja templates for the page flow: upload -> analysis -> story editor
-> book preview. Rendered with render_template_string.
"""

BASE_STYLE = '''
    <style>
        * { box-sizing: border-box; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: linear-gradient(135deg, #e0f2fe 0%, #fef3c7 100%);
            margin: 0;
            min-height: 100vh;
            color: #1f2937;
        }
        .container { max-width: 900px; margin: 0 auto; padding: 32px 16px; }
        h1 { text-align: center; }
        .card { background: white; border-radius: 12px; box-shadow: 0 4px 16px rgba(0,0,0,0.08); padding: 24px; margin-bottom: 24px; }
        label { display: block; font-weight: 600; margin: 12px 0 4px; }
        input[type=text], select, textarea { width: 100%; padding: 8px 12px; border: 1px solid #d1d5db; border-radius: 6px; font-size: 15px; }
        textarea { min-height: 80px; }
        button, .button { background: #2563eb; color: white; border: none; border-radius: 6px; padding: 10px 18px; font-size: 15px; cursor: pointer; text-decoration: none; display: inline-block; }
        button.secondary, .button.secondary { background: #e5e7eb; color: #374151; }
        button:disabled { opacity: 0.5; cursor: not-allowed; }
        .error { background: #fee2e2; color: #b91c1c; padding: 12px; border-radius: 6px; margin-bottom: 16px; }
        .warning { background: #fef3c7; color: #92400e; padding: 12px; border-radius: 6px; margin-bottom: 16px; }
        .hidden { display: none; }
        .grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(180px, 1fr)); gap: 12px; }
        .grid img { width: 100%; border-radius: 8px; }
        .theme { border: 2px solid #e5e7eb; border-radius: 8px; padding: 12px; margin-bottom: 12px; cursor: pointer; }
        .theme.selected { border-color: #2563eb; background: #eff6ff; }
        .page { display: flex; gap: 16px; align-items: flex-start; }
        .page img { width: 280px; border-radius: 8px; }
        .styles a { margin-right: 8px; margin-bottom: 8px; }
        .styles a.active { background: #2563eb; color: white; }
    </style>
'''

UPLOAD_TEMPLATE = '''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Create Your Pet Storybook</title>
''' + BASE_STYLE + '''
</head>
<body>
<div class="container">
    <h1>Create Your Pet Storybook</h1>
    <div class="card">
        <div id="error" class="error hidden"></div>
        <div id="warning" class="warning hidden"></div>
        <form id="upload-form">
            <h2>Step 1: Tell us about your pet</h2>
            <label for="pet_name">Pet's Name</label>
            <input type="text" id="pet_name" name="pet_name" placeholder="e.g., Buddy, Luna, Max" required>
            <label for="pet_type">Pet Type</label>
            <select id="pet_type" name="pet_type">
                {% for pet_type in pet_types %}<option value="{{ pet_type }}">{{ pet_type|capitalize }}</option>{% endfor %}
            </select>
            <label for="owner_name">Your Name (optional)</label>
            <input type="text" id="owner_name" name="owner_name">

            <h2>Step 2: Upload photos</h2>
            <input type="file" id="photos" name="photos" accept="image/*" multiple required>
            <p><small>JPEG, PNG, GIF or WEBP, up to 10MB each.</small></p>
            <button type="submit" id="submit">Create My Storybook</button>
        </form>
    </div>
</div>
<script>
document.getElementById('upload-form').addEventListener('submit', async (e) => {
    e.preventDefault();
    const button = document.getElementById('submit');
    const errorBox = document.getElementById('error');
    const warningBox = document.getElementById('warning');
    errorBox.classList.add('hidden');
    warningBox.classList.add('hidden');
    button.disabled = true;
    button.textContent = 'Processing...';
    try {
        const response = await fetch('/upload', { method: 'POST', body: new FormData(e.target) });
        const data = await response.json();
        if (!data.success) throw new Error(data.error || 'Upload failed');
        if (data.warning) {
            warningBox.textContent = data.warning;
            warningBox.classList.remove('hidden');
            setTimeout(() => { window.location = data.redirect; }, 1500);
        } else {
            window.location = data.redirect;
        }
    } catch (err) {
        errorBox.textContent = err.message;
        errorBox.classList.remove('hidden');
        button.disabled = false;
        button.textContent = 'Create My Storybook';
    }
});
</script>
</body>
</html>
'''

ANALYSIS_TEMPLATE = '''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Analyzing Your Photos</title>
''' + BASE_STYLE + '''
</head>
<body>
<div class="container">
    <h1>Finding the stories in {{ pet_name }}'s photos</h1>
    <div class="card">
        <div id="error" class="error hidden"></div>
        <p id="status">Analyzing {{ photo_count }} photo{{ 's' if photo_count != 1 else '' }}...</p>
        <div id="themes"></div>
        <button id="continue" class="hidden">Write the Story</button>
        <a class="button secondary" href="/upload">Start Over</a>
    </div>
</div>
<script>
let selectedTheme = null;

function renderThemes(themes) {
    const container = document.getElementById('themes');
    container.innerHTML = '';
    themes.forEach((theme, index) => {
        const div = document.createElement('div');
        div.className = 'theme' + (index === 0 ? ' selected' : '');
        div.innerHTML = '<h3></h3><p></p><div class="grid"></div>';
        div.querySelector('h3').textContent = theme.name + ' (' + theme.photos.length + ' photos)';
        div.querySelector('p').textContent = theme.context || '';
        theme.photos.forEach(photo => {
            const img = document.createElement('img');
            img.src = photo.originalImage;
            div.querySelector('.grid').appendChild(img);
        });
        div.addEventListener('click', () => {
            document.querySelectorAll('.theme').forEach(el => el.classList.remove('selected'));
            div.classList.add('selected');
            selectedTheme = theme.id;
        });
        container.appendChild(div);
    });
    if (themes.length > 0) {
        selectedTheme = themes[0].id;
        document.getElementById('continue').classList.remove('hidden');
    }
}

async function analyze() {
    try {
        const response = await fetch('/api/analyze-photos', {
            method: 'POST',
            headers: { 'Content-Type': 'application/json' },
            body: JSON.stringify({})
        });
        const data = await response.json();
        if (!data.success) throw new Error(data.error || 'Failed to analyze photos');
        document.getElementById('status').textContent = 'Pick a theme for the story:';
        renderThemes(data.themes);
    } catch (err) {
        const errorBox = document.getElementById('error');
        errorBox.textContent = 'Failed to analyze photos. Please try again.';
        errorBox.classList.remove('hidden');
        document.getElementById('status').textContent = '';
    }
}

document.getElementById('continue').addEventListener('click', async () => {
    const response = await fetch('/api/select-theme', {
        method: 'POST',
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify({ theme_id: selectedTheme })
    });
    const data = await response.json();
    if (data.success) window.location = '/story-editor';
});

analyze();
</script>
</body>
</html>
'''

STORY_EDITOR_TEMPLATE = '''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Edit Your Story</title>
''' + BASE_STYLE + '''
</head>
<body>
<div class="container">
    <h1>{{ theme_name }}</h1>
    <div class="card">
        <div id="error" class="error hidden"></div>
        <p id="status">Writing {{ pet_name }}'s story...</p>
        <div id="editor" class="hidden">
            <label for="title">Title</label>
            <input type="text" id="title">
            <div id="pages"></div>
            <p>
                <button id="regenerate" class="secondary">Regenerate Story</button>
                <button id="continue">Preview Book</button>
            </p>
        </div>
    </div>
</div>
<script>
let story = null;

function render() {
    document.getElementById('title').value = story.title;
    const container = document.getElementById('pages');
    container.innerHTML = '';
    story.pages.forEach((page, index) => {
        const wrapper = document.createElement('div');
        wrapper.innerHTML = '<label></label><textarea></textarea><button class="secondary">Make it more engaging</button>';
        wrapper.querySelector('label').textContent = 'Page ' + (index + 1);
        const textarea = wrapper.querySelector('textarea');
        textarea.value = page.text;
        textarea.addEventListener('change', () => { story.pages[index].text = textarea.value; save(false); });
        wrapper.querySelector('button').addEventListener('click', async () => {
            const response = await fetch('/api/generate-story', {
                method: 'PUT',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify({ storyText: textarea.value })
            });
            const data = await response.json();
            if (data.success) { story.pages[index].text = data.editedText; textarea.value = data.editedText; save(false); }
        });
        container.appendChild(wrapper);
    });
}

async function generate(regenerate) {
    document.getElementById('status').textContent = 'Writing the story...';
    try {
        const response = await fetch('/api/generate-story', {
            method: 'POST',
            headers: { 'Content-Type': 'application/json' },
            body: JSON.stringify({ regenerate: regenerate })
        });
        const data = await response.json();
        if (!data.success) throw new Error(data.error);
        story = data.story;
        document.getElementById('status').textContent = '';
        document.getElementById('editor').classList.remove('hidden');
        render();
    } catch (err) {
        const errorBox = document.getElementById('error');
        errorBox.textContent = 'Failed to generate story. Please try again.';
        errorBox.classList.remove('hidden');
    }
}

async function save(finalize) {
    story.title = document.getElementById('title').value;
    const response = await fetch('/api/story', {
        method: 'POST',
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify({ title: story.title, pages: story.pages, finalize: finalize })
    });
    return response.json();
}

document.getElementById('title').addEventListener('change', () => save(false));
document.getElementById('regenerate').addEventListener('click', () => generate(true));
document.getElementById('continue').addEventListener('click', async () => {
    const data = await save(true);
    if (data.success) {
        window.location = '/book-preview';
    } else {
        const errorBox = document.getElementById('error');
        errorBox.textContent = data.error;
        errorBox.classList.remove('hidden');
    }
});

generate(false);
</script>
</body>
</html>
'''

BOOK_PREVIEW_TEMPLATE = '''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{{ story.title }}</title>
''' + BASE_STYLE + '''
</head>
<body>
<div class="container">
    <h1>{{ story.title }}</h1>
    <div class="card">
        <div id="error" class="error hidden"></div>
        <div class="styles">
            {% for style_name, label in styles %}
            <a href="#" class="button secondary{% if style_name == selected_style %} active{% endif %}" data-style="{{ style_name }}" data-cached="{{ 'yes' if style_name in cached_styles or style_name == 'original' else 'no' }}">{{ label }}</a>
            {% endfor %}
        </div>
        <p id="status"></p>
    </div>
    {% for page in pages %}
    <div class="card page">
        {% if page.image %}<img src="{{ page.image }}" alt="Page {{ loop.index }}">{% else %}<p><em>Image not available</em></p>{% endif %}
        <p>{{ page.text }}</p>
    </div>
    {% endfor %}
    <div class="card">
        <a class="button" href="/download?style={{ selected_style }}">Download PDF</a>
        <a class="button secondary" href="/story-editor">Back to Editor</a>
    </div>
</div>
<script>
document.querySelectorAll('.styles a').forEach(link => {
    link.addEventListener('click', async (e) => {
        e.preventDefault();
        const style = link.dataset.style;
        if (link.dataset.cached === 'yes') {
            window.location = '/book-preview?style=' + style;
            return;
        }
        document.getElementById('status').textContent = 'Generating ' + link.textContent + ' images...';
        document.querySelectorAll('.styles a').forEach(a => a.classList.add('disabled'));
        try {
            const response = await fetch('/api/stylize-images', {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify({ style: style })
            });
            const data = await response.json();
            if (!data.success) throw new Error(data.error);
            window.location = '/book-preview?style=' + style;
        } catch (err) {
            const errorBox = document.getElementById('error');
            errorBox.textContent = 'Failed to stylize images: ' + err.message;
            errorBox.classList.remove('hidden');
            document.getElementById('status').textContent = '';
        }
    });
});
</script>
</body>
</html>
'''

DEBUG_TEMPLATE = '''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Photo Analysis Debug</title>
''' + BASE_STYLE + '''
</head>
<body>
<div class="container">
    <h1>Photo Analysis Debug</h1>
    {% if not rows %}<div class="card"><p>No photos in this session.</p></div>{% endif %}
    {% for row in rows %}
    <div class="card page">
        <img src="{{ row.image }}" alt="Photo {{ loop.index }}">
        <pre>{{ row.analysis }}</pre>
    </div>
    {% endfor %}
</div>
</body>
</html>
'''
