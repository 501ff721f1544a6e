"""Request parameter compilation: raw form fields to bounded EffectParameters."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any, Dict, Mapping, Optional, Tuple

from framecrush.domain.models import EffectParameters

PRESET_KEY = "preset"


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    aliases: Tuple[str, ...]
    minimum: float
    maximum: float
    default: float
    integer: bool = False

    def clamp(self, value: float) -> float:
        if self.integer:
            value = math.floor(value + 0.5)
        value = max(self.minimum, min(self.maximum, value))
        return int(value) if self.integer else float(value)


# Alias order is the precedence order: the first alias with a non-blank value wins.
PARAMETER_SPECS: Tuple[ParameterSpec, ...] = (
    ParameterSpec("frame_rate", ("fps", "frameRate", "framerate", "frame_rate"), 4, 30, 12),
    ParameterSpec("crunch_width", ("crunch", "crunchWidth", "crunch_width", "width"), 180, 960, 480, integer=True),
    ParameterSpec("grain", ("grain", "noise"), 0, 30, 14),
    ParameterSpec("contrast", ("contrast",), 0.8, 1.6, 1.2),
    ParameterSpec("brightness", ("brightness",), -0.2, 0.2, 0.02),
    ParameterSpec("gamma", ("gamma",), 0.7, 1.4, 1.0),
    ParameterSpec("saturation", ("saturation", "sat"), 0, 1.5, 0.8),
    ParameterSpec("quality", ("crf", "quality"), 18, 35, 28, integer=True),
)

SPECS_BY_NAME: Dict[str, ParameterSpec] = {spec.name: spec for spec in PARAMETER_SPECS}

# Looks shipped with the original web client.
BUILTIN_PRESETS: Dict[str, Dict[str, Any]] = {
    "punk-camcorder": {
        "fps": 12, "crunch": 320, "grain": 22, "contrast": 1.25,
        "brightness": 0.02, "gamma": 1.05, "saturation": 0.75, "crf": 30,
    },
    "washed-dv": {
        "fps": 15, "crunch": 480, "grain": 14, "contrast": 1.05,
        "brightness": 0.04, "gamma": 1.1, "saturation": 0.65, "crf": 28,
    },
    "brutal-bw": {
        "fps": 12, "crunch": 360, "grain": 18, "contrast": 1.45,
        "brightness": -0.02, "gamma": 0.95, "saturation": 0.0, "crf": 29,
    },
    "hi-grime": {
        "fps": 10, "crunch": 240, "grain": 28, "contrast": 1.3,
        "brightness": 0.0, "gamma": 1.0, "saturation": 0.85, "crf": 34,
    },
}


def parse_number(raw_value: Any) -> Optional[float]:
    """Returns a finite float, or None when the value does not parse."""
    if raw_value is None or isinstance(raw_value, bool):
        return None
    text = str(raw_value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def lookup_alias(raw: Mapping[str, Any], spec: ParameterSpec) -> Optional[Any]:
    for alias in spec.aliases:
        value = raw.get(alias)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def resolve_field(raw: Mapping[str, Any], spec: ParameterSpec, default: Optional[float] = None) -> float:
    base = spec.default if default is None else default
    number = parse_number(lookup_alias(raw, spec))
    if number is None:
        number = base
    return spec.clamp(number)


def normalize_preset_name(name: Any) -> str:
    return str(name).strip().lower().replace("_", "-").replace(" ", "-")


def preset_defaults(
    raw: Mapping[str, Any],
    presets: Optional[Mapping[str, Mapping[str, Any]]],
) -> Dict[str, float]:
    if not presets:
        return {}
    requested = raw.get(PRESET_KEY)
    if requested is None:
        return {}
    lookup = {normalize_preset_name(key): value for key, value in presets.items()}
    preset = lookup.get(normalize_preset_name(requested))
    if not preset:
        return {}
    return {spec.name: resolve_field(preset, spec) for spec in PARAMETER_SPECS}


def compile_parameters(
    raw: Mapping[str, Any],
    presets: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> EffectParameters:
    """Resolves every field independently; never raises on bad input."""
    defaults = preset_defaults(raw, presets)
    values = {
        spec.name: resolve_field(raw, spec, defaults.get(spec.name))
        for spec in PARAMETER_SPECS
    }
    return EffectParameters(**values)


def describe_parameters(params: EffectParameters) -> Dict[str, str]:
    return {spec.name: str(getattr(params, spec.name)) for spec in PARAMETER_SPECS}
