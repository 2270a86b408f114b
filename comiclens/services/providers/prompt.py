"""모든 provider가 공유하는 번역 프롬프트"""

LANGUAGE_NAMES: dict[str, str] = {
    "ja": "Japanese",
    "ko": "Korean",
    "zh-CN": "Simplified Chinese",
    "zh-TW": "Traditional Chinese",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
}


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def build_translation_prompt(target_language: str) -> str:
    name = language_name(target_language)
    return f"""You are an expert comic translator. Detect and translate every piece of text in this image.

Detection rules:
- Scan each panel top to bottom, left to right
- Include every speech balloon, caption box, narration and sound effect
- Do not miss small balloons, balloons on dark backgrounds, or balloons at panel edges

Return a JSON array with one object per text region:
- original: the source text
- translated: a natural, concise {name} translation
- type: "speech" | "thought" | "caption" | "narration" | "sfx"
- box: [y_min, x_min, y_max, x_max] normalized to 0-1000 (0 = top/left edge, 1000 = bottom/right edge)
- background: balloon background color, omit for plain white
  - solid color: a string, e.g. "#ffe082"
  - gradient: an object with the top and bottom colors, e.g. {{"top": "#d4edda", "bottom": "#ffffff"}}
- border: balloon border color, only when a border exists (e.g. "#4a7c59")

Translation rules:
- Keep the tone and emotion of the original
- Translate sound effects expressively
- Keep translations short enough to fit the balloon

Box rules:
- Enclose only the text inside the balloon, not the tail
- Boxes of adjacent balloons must not overlap
- Multi-line text in one balloon is a single entry

Return only the JSON array:
[{{"original":"FIVE...?","translated":"...","type":"speech","box":[20,30,80,180]}},{{"original":"ROYAL CONSUL...","translated":"...","type":"caption","box":[5,10,120,480],"background":{{"top":"#d4edda","bottom":"#f0f8e8"}},"border":"#4a7c59"}}]"""
