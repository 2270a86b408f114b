"""번역 데이터 모델

Parser → Cache → Coordinator → Prefetch 전체에서 사용하는 공통 스키마.
Annotation은 parser의 매핑 단계에서만 생성되고 이후에는 변경되지 않는다.
"""

import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from comiclens.schemas.base import BaseSchema

AnnotationType = Literal["speech", "thought", "caption", "narration", "sfx", "other"]
ANNOTATION_TYPES: frozenset[str] = frozenset(
    ("speech", "thought", "caption", "narration", "sfx", "other")
)
DEFAULT_ANNOTATION_TYPE: AnnotationType = "speech"


def _clamp_percent(value: float) -> float:
    return min(100.0, max(0.0, value))


class BoundingBox(BaseModel):
    """이미지 대비 퍼센트 좌표 {top, left, width, height}

    유효성:
    - 음수 width/height는 변을 뒤집어 정규화
    - 모든 변은 0~100으로 클램핑 (left + width <= 100, top + height <= 100)
    """

    model_config = ConfigDict(frozen=True)

    top: float
    left: float
    width: float
    height: float

    @model_validator(mode="before")
    @classmethod
    def clamp_to_image(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        try:
            values = {k: float(data[k]) for k in ("top", "left", "width", "height")}
        except (KeyError, TypeError, ValueError):
            # 필드 검증 단계에서 ValidationError로 처리
            return data

        for name, value in values.items():
            if math.isnan(value) or math.isinf(value):
                raise ValueError(f"{name} is NaN or Inf")

        x1, x2 = values["left"], values["left"] + values["width"]
        y1, y2 = values["top"], values["top"] + values["height"]
        if x1 > x2:
            x1, x2 = x2, x1
        if y1 > y2:
            y1, y2 = y2, y1

        left, top = _clamp_percent(x1), _clamp_percent(y1)
        width = min(_clamp_percent(x2) - left, 100.0 - left)
        height = min(_clamp_percent(y2) - top, 100.0 - top)
        return {"top": top, "left": left, "width": width, "height": height}

    def is_valid(self) -> bool:
        """이미지 안에 면적이 남아 있는지 확인 (width > 0 and height > 0)"""
        return self.width > 0 and self.height > 0


class GradientBackground(BaseModel):
    """2-stop 그라데이션 배경 (provider가 돌려준 top/bottom 색)

    provider의 stop 순서는 렌더링 관례와 반대라서 CSS는 bottom → top 순서로 만든다.
    알려진 provider 특성이므로 "고치지" 않는다.
    """

    model_config = ConfigDict(frozen=True)

    top: str
    bottom: str

    @property
    def stops(self) -> tuple[str, str]:
        return (self.bottom, self.top)

    @property
    def css(self) -> str:
        first, second = self.stops
        return f"linear-gradient(to bottom, {first}, {second})"


class Annotation(BaseModel):
    """번역된 텍스트 영역 1개"""

    model_config = ConfigDict(frozen=True)

    bbox: BoundingBox
    original: str = ""
    translated: str = Field(min_length=1)
    type: AnnotationType = DEFAULT_ANNOTATION_TYPE
    background: str | GradientBackground | None = None
    border: str | None = None


class CacheEntry(BaseModel):
    """저장소에 기록되는 캐시 항목 (통째로 교체되는 단위, 수정하지 않음)"""

    annotations: list[Annotation]
    created_at: int  # epoch ms
    schema_version: str


class TranslationSuccess(BaseSchema):
    annotations: list[Annotation]
    from_cache: bool = False


class TranslationFailure(BaseSchema):
    error: str
    kind: str = "unknown"


TranslationOutcome = TranslationSuccess | TranslationFailure


class PrefetchProgress(BaseSchema):
    state: Literal["idle", "active", "done"]
    processed: int = 0
    total: int = 0
