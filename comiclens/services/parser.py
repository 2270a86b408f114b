"""Vision 모델 응답 파서

LLM이 돌려준 느슨한 JSON 텍스트를 검증된 Annotation 리스트로 변환한다.

단계:
1. 마크다운 코드 펜스 제거
2. 첫 번째 최상위 JSON 배열 추출 (괄호 매칭)
3. 정리 (제어 문자, 잘못된 escape, trailing comma, 누락된 comma)
4. 파싱 + 잘린 응답 복구 후보 시도
5. 필드 검증 및 좌표 정규화 (0~1000 box 또는 px bbox → %)

어떤 입력에도 예외를 던지지 않는다. 최악의 경우 빈 리스트.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, cast

from pydantic import ValidationError

from comiclens.constants import ImageDefaults
from comiclens.schemas.translation import (
    ANNOTATION_TYPES,
    DEFAULT_ANNOTATION_TYPE,
    Annotation,
    BoundingBox,
    GradientBackground,
)

logger = logging.getLogger(__name__)

NORMALIZED_SCALE = 1000.0

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]+")
_BACKSLASH = re.compile(r'\\(["\\/bfnrtu])|\\')
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_MISSING_COMMA = re.compile(r"([}\]])\s*([\"{\[])")

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")
_NAMED_COLOR = re.compile(r"^[a-zA-Z]{3,20}$")
_RGB_COLOR = re.compile(r"^rgba?\(\s*[\d.%\s,/]+\)$")


@dataclass
class ParseResult:
    """파싱 결과 + 진단 정보 (실패 시 원문과 실패 위치 보존)"""

    annotations: list[Annotation] = field(default_factory=list)
    raw_text: str = ""
    error_offset: int | None = None
    dropped: int = 0

    @property
    def failed(self) -> bool:
        return self.error_offset is not None


def strip_code_fences(text: str) -> str:
    return _FENCE_PATTERN.sub("", text)


def extract_json_array(text: str) -> str | None:
    """첫 번째 '['부터 짝이 맞는 ']'까지 추출

    문자열 리터럴 안의 괄호는 무시한다. 닫히지 않은 배열(잘린 응답)은
    텍스트 끝까지 반환해서 복구 단계에 넘긴다.
    """
    start = text.find("[")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return text[start:]


def sanitize_json(text: str) -> str:
    """LLM이 자주 만드는 JSON 오류 정리

    인라인 // 주석 제거는 시도하지 않는다 (URL과 구분 불가).
    """
    sanitized = _CONTROL_CHARS.sub(" ", text)
    sanitized = _BACKSLASH.sub(lambda m: m.group(0) if m.group(1) else "\\\\", sanitized)
    sanitized = _TRAILING_COMMA.sub(r"\1", sanitized)
    return _MISSING_COMMA.sub(r"\1,\2", sanitized)


def _repair_candidates(sanitized: str, error_offset: int | None) -> list[str]:
    candidates = [sanitized + "]", sanitized + "}]", sanitized + '"}]']

    limit = error_offset if error_offset is not None else len(sanitized)
    last_complete = sanitized.rfind("},", 0, limit)
    if last_complete > 0:
        candidates.append(sanitized[: last_complete + 1] + "]")

    return candidates


def _load_array(sanitized: str) -> tuple[list[Any] | None, int | None]:
    """정리된 문자열 파싱, 실패 시 복구 후보를 순서대로 시도"""
    error_offset: int | None = None
    try:
        parsed = json.loads(sanitized)
        if isinstance(parsed, list):
            return parsed, None
    except json.JSONDecodeError as e:
        error_offset = e.pos
    except RecursionError:
        error_offset = 0

    for candidate in _repair_candidates(sanitized, error_offset):
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, RecursionError):
            continue
        if isinstance(parsed, list):
            return parsed, None

    return None, error_offset if error_offset is not None else 0


def clean_translated_text(text: str) -> str:
    """「」로 감싼 경우 괄호 제거, 끝의 마침표(。) 하나 제거"""
    if not text:
        return text
    if len(text) >= 2 and text.startswith("「") and text.endswith("」"):
        text = text[1:-1]
    if text.endswith("。"):
        text = text[:-1]
    return text


def repair_color(value: Any) -> str | None:
    """색 토큰 검증 (hex, 색 이름, rgb()/rgba()만 허용)"""
    if not isinstance(value, str):
        return None
    token = value.strip()
    if _HEX_COLOR.match(token) or _NAMED_COLOR.match(token) or _RGB_COLOR.match(token):
        return token
    return None


def _parse_background(value: Any) -> str | GradientBackground | None:
    if isinstance(value, str):
        return repair_color(value)
    if isinstance(value, dict):
        top = repair_color(value.get("top"))
        bottom = repair_color(value.get("bottom"))
        if top and bottom:
            return GradientBackground(top=top, bottom=bottom)
    return None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _first_number(raw: dict[str, Any], keys: tuple[str, ...], default: float) -> float | None:
    for key in keys:
        if raw.get(key) is not None:
            return _as_number(raw[key])
    return default


def _box_to_percent(box: Any) -> dict[str, float] | None:
    """[y_min, x_min, y_max, x_max] (0~1000) → %"""
    if not isinstance(box, list) or len(box) != 4:
        return None
    numbers = [_as_number(v) for v in box]
    if any(n is None for n in numbers):
        return None

    y_min, x_min, y_max, x_max = cast(list[float], numbers)
    return {
        "top": y_min * 100 / NORMALIZED_SCALE,
        "left": x_min * 100 / NORMALIZED_SCALE,
        "width": (x_max - x_min) * 100 / NORMALIZED_SCALE,
        "height": (y_max - y_min) * 100 / NORMALIZED_SCALE,
    }


def _pixel_bbox_to_percent(bbox: Any, width: float, height: float) -> dict[str, float] | None:
    """{x, y, w, h} (px) → %"""
    if not isinstance(bbox, dict):
        return None

    x = _first_number(bbox, ("x", "left"), 0.0)
    y = _first_number(bbox, ("y", "top"), 0.0)
    w = _first_number(bbox, ("w", "width"), 100.0)
    h = _first_number(bbox, ("h", "height"), 50.0)
    if x is None or y is None or w is None or h is None:
        return None

    return {
        "top": y * 100 / height,
        "left": x * 100 / width,
        "width": w * 100 / width,
        "height": h * 100 / height,
    }


def _to_annotation(raw: Any, width: float, height: float) -> Annotation | None:
    if not isinstance(raw, dict):
        return None

    translated = raw.get("translated")
    if not isinstance(translated, str) or not translated.strip():
        return None

    geometry = _box_to_percent(raw.get("box"))
    if geometry is None:
        geometry = _pixel_bbox_to_percent(raw.get("bbox"), width, height)
    if geometry is None:
        return None

    bbox = BoundingBox.model_validate(geometry)
    if not bbox.is_valid():
        return None

    cleaned = clean_translated_text(translated)
    if not cleaned:
        return None

    original = raw.get("original")
    category = raw.get("type")

    return Annotation(
        bbox=bbox,
        original=original if isinstance(original, str) else "",
        translated=cleaned,
        type=category if category in ANNOTATION_TYPES else DEFAULT_ANNOTATION_TYPE,
        background=_parse_background(raw.get("background")),
        border=repair_color(raw.get("border")),
    )


def parse_response(
    text: str | None,
    image_width: int | None = None,
    image_height: int | None = None,
) -> ParseResult:
    """Vision 응답 텍스트 → ParseResult (예외 없음)"""
    raw_text = text if isinstance(text, str) else ""
    width = float(image_width) if image_width and image_width > 0 else ImageDefaults.WIDTH
    height = float(image_height) if image_height and image_height > 0 else ImageDefaults.HEIGHT

    extracted = extract_json_array(strip_code_fences(raw_text))
    if extracted is None:
        return ParseResult(raw_text=raw_text)

    items, error_offset = _load_array(sanitize_json(extracted))
    if items is None:
        logger.warning(f"응답 JSON 파싱 실패 (offset={error_offset}): {raw_text[:200]!r}")
        return ParseResult(raw_text=raw_text, error_offset=error_offset)

    annotations: list[Annotation] = []
    for item in items:
        try:
            annotation = _to_annotation(item, width, height)
        except (ValidationError, ValueError, TypeError, ZeroDivisionError) as e:
            logger.debug(f"어노테이션 변환 실패: {item!r} - {e}")
            annotation = None
        if annotation is not None:
            annotations.append(annotation)

    dropped = len(items) - len(annotations)
    if dropped:
        logger.info(f"유효하지 않은 항목 {dropped}개 제외")

    return ParseResult(annotations=annotations, raw_text=raw_text, dropped=dropped)


def parse_annotations(
    text: str | None,
    image_width: int | None = None,
    image_height: int | None = None,
) -> list[Annotation]:
    return parse_response(text, image_width, image_height).annotations
