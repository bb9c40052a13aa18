"""Prompt template variants and the style descriptor they are compiled against.

A template is one of four variants discriminated by ``template_type``. All
models are frozen so the discriminant cannot change after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

SCENE_PLACEHOLDER = "[Scene description]"


@dataclass(frozen=True)
class StyleDescriptor:
    id: str
    label: str
    base_prompt: str
    description: str = ""
    default_colors: tuple[str, ...] = ()
    engines: frozenset[str] = field(default_factory=frozenset)

    def supports(self, engine: str) -> bool:
        return engine in self.engines


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class PaletteColor(_Frozen):
    id: str = ""
    name: str = ""
    value: str
    usage: str = ""


class ColorPalette(_Frozen):
    name: str = ""
    colors: tuple[PaletteColor, ...] = ()


class CameraCompositionSection(_Frozen):
    enabled: bool = True
    camera_angle: str = "stable, undistorted view that clearly presents the subject"
    composition_layout: str = "balanced framing"
    framing: str = "ensure the subject fits naturally without clipping or distortion"
    depth_arrangement: str = "clearly separated foreground, midground, and background with proper scale"


class EnvironmentSection(_Frozen):
    enabled: bool = True
    setting: str = SCENE_PLACEHOLDER
    lighting: str = "soft, even light suitable for the scene"
    atmosphere: str = "match style tone"
    background_complexity: str = "follow the same simplification level as the reference style"


class MainCharacterSection(_Frozen):
    enabled: bool = True
    pose: str = "natural posture derived from the described action"
    expression: str = "consistent with the character identity implied by the prompt"
    interaction: str = "accurately placed relative to props/environment with correct scale"
    clothing: str = "match character lock and respect style"


class SecondaryObjectsSection(_Frozen):
    enabled: bool = True
    objects: str = "follow the same stylization rules as the style preset"
    motion_cues: str = "remain subtle and clean"
    scale_rules: str = "all objects obey correct scale and perspective"


class StyleEnforcementSection(_Frozen):
    enabled: bool = True
    style_rules: str = ""
    color_palette: str = "consistent across all scenes"
    texture_density: str = "uniform detail density"


DEFAULT_NEGATIVE_ITEMS = """- inconsistent character identity
- incorrect character proportions
- distorted anatomy or broken limbs
- incorrect object scale
- broken perspective or impossible angles
- unwanted changes in clothing or hairstyle
- mismatched art style within the same scene
- unintended extra characters or duplicated faces
- chaotic or cluttered composition
- low-quality details such as blurry shapes or noisy textures"""


class NegativePromptSection(_Frozen):
    enabled: bool = True
    items: str = DEFAULT_NEGATIVE_ITEMS


class StructuredTemplate(_Frozen):
    template_type: Literal["structured"] = "structured"
    name: str = "Structured"
    color_mode: Literal["default", "custom"] | None = None
    custom_colors: ColorPalette | None = None
    camera_composition: CameraCompositionSection = CameraCompositionSection()
    environment: EnvironmentSection = EnvironmentSection()
    main_character: MainCharacterSection = MainCharacterSection()
    secondary_objects: SecondaryObjectsSection = SecondaryObjectsSection()
    style_enforcement: StyleEnforcementSection = StyleEnforcementSection()
    negative_prompt: NegativePromptSection = NegativePromptSection()


DEFAULT_SIMPLE_SUFFIX = "white background, 8k resolution"


class SimpleTemplate(_Frozen):
    template_type: Literal["simple"] = "simple"
    name: str = "Simple"
    suffix: str = DEFAULT_SIMPLE_SUFFIX


class UniversalTemplate(_Frozen):
    template_type: Literal["universal"] = "universal"
    name: str = "Universal"
    framing: str = "single clear scene, subject fully visible, balanced composition with readable depth"
    style_keywords: str = ""
    palette_mode: Literal["loose", "strict"] = "loose"
    loose_palette: str = ""
    color_override: tuple[str, ...] = ()
    strict_palette: tuple[str, ...] = ()
    # Older templates stored their palette here before strict/loose existed.
    default_palette: tuple[str, ...] = ()
    rules: str = ""
    negative_prompt: str = ""


class WeightedSection(_Frozen):
    text: str = ""
    weight: str = ""


class CinematicTemplate(_Frozen):
    template_type: Literal["cinematic"] = "cinematic"
    name: str = "Cinematic"
    subject: WeightedSection = WeightedSection(text=SCENE_PLACEHOLDER, weight="(1.3)")
    environment: WeightedSection = WeightedSection(text="grounded, believable setting that supports the action")
    camera: WeightedSection = WeightedSection(text="cinematic wide shot, 35mm lens, shallow depth of field")
    lighting: WeightedSection = WeightedSection(text="motivated key light with soft fill, gentle rim light")
    style: WeightedSection = WeightedSection(text="", weight="(1.2)")


PromptTemplate = Annotated[
    Union[StructuredTemplate, SimpleTemplate, UniversalTemplate, CinematicTemplate],
    Field(discriminator="template_type"),
]

TEMPLATE_VARIANTS: dict[str, type[BaseModel]] = {
    "structured": StructuredTemplate,
    "simple": SimpleTemplate,
    "universal": UniversalTemplate,
    "cinematic": CinematicTemplate,
}
