import re
from typing import Any

from app.templates.models import (
    SCENE_PLACEHOLDER,
    CinematicTemplate,
    ColorPalette,
    SimpleTemplate,
    StructuredTemplate,
    StyleDescriptor,
    UniversalTemplate,
)
from app.templates.parsing import parse_template

REFERENCE_LOCK_INSTRUCTION = (
    "CHARACTER LOCK: preserve the character appearance from the reference images exactly "
    "(same face, hairstyle, outfit, body proportions and colors); change only pose, action and setting."
)

_HEX_COLOR = re.compile(r"#[0-9A-Fa-f]{6}\b|#[0-9A-Fa-f]{3}\b")
_EMPTY_PARENS = re.compile(r"[ \t]*\([\s,]*\)")
_SPACE_RUNS = re.compile(r"(?<=\S)[ \t]{2,}")


def compile_prompt(
    scene_text: str,
    style: StyleDescriptor,
    template: Any,
    has_user_reference: bool = False,
) -> str:
    """Compile the final engine prompt for one scene.

    ``template`` may be a template model or a raw (possibly partial) mapping;
    raw input is merged onto the variant defaults first. Every variant except
    cinematic carries the character lock instruction when the user supplied a
    reference image.
    """
    parsed = parse_template(template)
    scene_text = (scene_text or "").strip()

    match parsed:
        case StructuredTemplate():
            prompt = _compile_structured(scene_text, style, parsed)
        case SimpleTemplate():
            prompt = _compile_simple(scene_text, style, parsed)
        case UniversalTemplate():
            prompt = _compile_universal(scene_text, style, parsed)
        case CinematicTemplate():
            return _compile_cinematic(scene_text, style, parsed)
        case _:
            raise TypeError(f"Unsupported template type: {type(parsed).__name__}")

    if has_user_reference:
        prompt = append_reference_lock(prompt)
    return prompt


def append_reference_lock(prompt: str) -> str:
    if REFERENCE_LOCK_INSTRUCTION in prompt:
        return prompt
    return f"{prompt}\n\n{REFERENCE_LOCK_INSTRUCTION}"


def contains_hex_color(text: str) -> bool:
    return bool(_HEX_COLOR.search(text))


def strip_hex_colors(text: str) -> str:
    """Remove hex color tokens along with any parentheses they leave empty."""
    previous = None
    while previous != text:
        previous = text
        text = _EMPTY_PARENS.sub("", _HEX_COLOR.sub("", text))
    return _SPACE_RUNS.sub(" ", text)


def _fill(value: str, scene_text: str) -> str:
    return value.replace(SCENE_PLACEHOLDER, scene_text)


# Structured


def _structured_palette_lines(template: StructuredTemplate, style: StyleDescriptor) -> list[str]:
    if template.color_mode == "default":
        return []
    palette: ColorPalette | None = template.custom_colors
    if palette is not None and palette.colors:
        lines = [f"- Color palette ({palette.name}):" if palette.name else "- Color palette:"]
        for color in palette.colors:
            label = f"{color.name} ({color.value})" if color.name else color.value
            lines.append(f"  - {label}: {color.usage}" if color.usage else f"  - {label}")
        return lines
    if style.default_colors:
        return [f"- Color palette: use only {', '.join(style.default_colors)}"]
    return []


def _compile_structured(scene_text: str, style: StyleDescriptor, template: StructuredTemplate) -> str:
    sections: list[tuple[str, list[str]]] = []

    camera = template.camera_composition
    if camera.enabled:
        sections.append((
            "CAMERA & COMPOSITION",
            [
                f"- Camera angle: {camera.camera_angle}",
                f"- Composition layout: {camera.composition_layout}",
                f"- Framing: {camera.framing}",
                f"- Depth arrangement: {camera.depth_arrangement}",
            ],
        ))

    env = template.environment
    if env.enabled:
        sections.append((
            "ENVIRONMENT",
            [
                f"- Setting: {env.setting}",
                f"- Lighting: {env.lighting}",
                f"- Atmosphere: {env.atmosphere}",
                f"- Background complexity: {env.background_complexity}",
            ],
        ))

    character = template.main_character
    if character.enabled:
        sections.append((
            "MAIN CHARACTER",
            [
                f"- Pose: {character.pose}",
                f"- Expression: {character.expression}",
                f"- Interaction: {character.interaction}",
                f"- Clothing: {character.clothing}",
            ],
        ))

    secondary = template.secondary_objects
    if secondary.enabled:
        sections.append((
            "SECONDARY OBJECTS & ACTION",
            [
                f"- Objects: {secondary.objects}",
                f"- Motion cues: {secondary.motion_cues}",
                f"- Scale: {secondary.scale_rules}",
            ],
        ))

    enforcement = template.style_enforcement
    if enforcement.enabled:
        lines = []
        if style.base_prompt:
            lines.append(f"- Apply {style.base_prompt}.")
        if enforcement.style_rules:
            lines.append(f"- Style rules: {enforcement.style_rules}")
        lines.append(f"- Color consistency: {enforcement.color_palette}")
        lines.extend(_structured_palette_lines(template, style))
        lines.append(f"- Texture density: {enforcement.texture_density}")
        sections.append(("STYLE ENFORCEMENT", lines))

    negative = template.negative_prompt
    if negative.enabled and negative.items.strip():
        sections.append(("NEGATIVE PROMPT", [negative.items.strip()]))

    blocks = [f"[SCENE — {scene_text}]"]
    for number, (title, lines) in enumerate(sections, start=1):
        body = "\n".join(_fill(line, scene_text) for line in lines)
        blocks.append(f"{number}. {title}\n{body}")
    prompt = "\n\n".join(blocks)
    # Default color mode emits no hex tokens, including ones from style or scene text.
    if template.color_mode == "default":
        prompt = strip_hex_colors(prompt)
    return prompt


# Simple


def _compile_simple(scene_text: str, style: StyleDescriptor, template: SimpleTemplate) -> str:
    parts = [scene_text, style.base_prompt.strip(), template.suffix.strip()]
    return ", ".join(part for part in parts if part)


# Universal


def _universal_hex_palette(template: UniversalTemplate, style: StyleDescriptor) -> tuple[str, ...]:
    for candidate in (
        template.color_override,
        template.strict_palette,
        template.default_palette,
        style.default_colors,
    ):
        colors = tuple(c.strip() for c in candidate if c and c.strip())
        if colors:
            return colors
    return ()


def _universal_colors(template: UniversalTemplate, style: StyleDescriptor) -> str | None:
    loose = template.loose_palette.strip()
    hex_palette = _universal_hex_palette(template, style)
    strict_text = (
        f"Use only these colors, in order of dominance: {', '.join(hex_palette)}." if hex_palette else None
    )
    if template.palette_mode == "strict":
        return strict_text or loose or None
    return loose or strict_text


def _compile_universal(scene_text: str, style: StyleDescriptor, template: UniversalTemplate) -> str:
    style_text = template.style_keywords.strip() or style.base_prompt.strip()
    blocks = [
        f"[SCENE]\n{scene_text}",
        f"[FRAMING]\n{_fill(template.framing, scene_text)}",
        f"[STYLE]\n{style_text}",
    ]
    colors = _universal_colors(template, style)
    if colors:
        blocks.append(f"[COLORS]\n{colors}")
    if template.rules.strip():
        blocks.append(f"[RULES]\n{_fill(template.rules.strip(), scene_text)}")
    if template.negative_prompt.strip():
        blocks.append(f"[NEGATIVE]\n{template.negative_prompt.strip()}")
    return "\n\n".join(blocks)


# Cinematic


def _compile_cinematic(scene_text: str, style: StyleDescriptor, template: CinematicTemplate) -> str:
    subject_text = _fill(template.subject.text, scene_text).strip() or scene_text
    style_text = _fill(template.style.text, scene_text).strip() or style.base_prompt.strip()
    ordered = [
        (subject_text, template.subject.weight),
        (_fill(template.environment.text, scene_text).strip(), template.environment.weight),
        (_fill(template.camera.text, scene_text).strip(), template.camera.weight),
        (_fill(template.lighting.text, scene_text).strip(), template.lighting.weight),
        (style_text, template.style.weight),
    ]
    parts = []
    for text, weight in ordered:
        if not text:
            continue
        parts.append(f"{text} {weight}" if weight else text)
    return ",\n".join(parts) or scene_text
