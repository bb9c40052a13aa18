"""Built-in styles and their default templates.

These seed the style catalogue (``scripts/seed_styles.py``) and back lookups
when the database has no row for a built-in style.
"""

from app.templates.models import StyleDescriptor

ALL_ENGINES = frozenset({"nanobanana", "seeddream", "nanobanana-pro"})

BUILT_IN_STYLES: tuple[StyleDescriptor, ...] = (
    StyleDescriptor(
        id="cyan_sketchline_vector",
        label="Cool Cyan Vector Line Art",
        description="Clean vector line art with cyan-blue gradient palette and minimal white background",
        base_prompt=(
            "in the style of clean vector line art, cyan-blue gradient color palette, minimal white "
            "background, crisp lines, modern illustration style, geometric shapes"
        ),
        default_colors=("#002B5C", "#00AEEF", "#0084D7", "#FFFFFF"),
        engines=ALL_ENGINES,
    ),
    StyleDescriptor(
        id="cyan_sketchline_vector_v2",
        label="Sketchline Vector V2",
        description="Deep-blue sketchline vector art with small cyan accents",
        base_prompt="clean deep-blue line art, flat 2D illustration, soft cyan-to-blue gradient fills",
        default_colors=("#002B5C", "#00AEEF", "#0084D7", "#FFFFFF"),
        engines=ALL_ENGINES,
    ),
    StyleDescriptor(
        id="simple_cyan_test",
        label="Simple Cyan (Test)",
        description="Minimal comma-joined prompt for quick engine checks",
        base_prompt="clean cyan vector line art",
        engines=ALL_ENGINES,
    ),
    StyleDescriptor(
        id="warm_orange_flat",
        label="Warm Orange Flat Illustration",
        description="Warm orange/red flat illustration with strong contrast and almost white background",
        base_prompt=(
            "in the style of warm orange and red flat illustration, strong contrast on main subject, "
            "almost white background, bold colors, simplified shapes, modern flat design"
        ),
        default_colors=("#FF6B35", "#FFF8E7", "#4A3F35"),
        engines=ALL_ENGINES,
    ),
    StyleDescriptor(
        id="photorealistic",
        label="Photorealistic",
        description="Hyper-realistic photography style with natural lighting and fine details",
        base_prompt=(
            "photorealistic, highly detailed, natural lighting, professional photography, sharp focus, "
            "high resolution, 8k quality, realistic textures"
        ),
        engines=ALL_ENGINES,
    ),
    StyleDescriptor(
        id="watercolor_painting",
        label="Watercolor Painting",
        description="Soft watercolor art with flowing colors and artistic brush strokes",
        base_prompt=(
            "watercolor painting style, soft edges, flowing colors, artistic brush strokes, paper texture, "
            "delicate washes, traditional art medium"
        ),
        engines=ALL_ENGINES,
    ),
    StyleDescriptor(
        id="pixel_art",
        label="Pixel Art",
        description="Retro 8-bit or 16-bit pixel art style with vibrant colors",
        base_prompt=(
            "pixel art style, 16-bit graphics, retro gaming aesthetic, vibrant colors, sharp pixels, "
            "nostalgic feel, limited color palette"
        ),
        engines=frozenset({"nanobanana", "seeddream"}),
    ),
    StyleDescriptor(
        id="anime_style",
        label="Anime Style",
        description="Japanese anime art with bold lines, expressive characters, and vibrant colors",
        base_prompt=(
            "anime art style, manga inspired, bold clean lines, expressive eyes, vibrant colors, cel shading, "
            "Japanese animation aesthetic"
        ),
        engines=ALL_ENGINES,
    ),
    StyleDescriptor(
        id="oil_painting",
        label="Oil Painting",
        description="Classic oil painting with rich textures and brushwork like the old masters",
        base_prompt=(
            "oil painting style, thick brush strokes, rich textures, canvas texture visible, classical art, "
            "impressionist techniques, museum quality"
        ),
        engines=ALL_ENGINES,
    ),
    StyleDescriptor(
        id="minimalist_abstract",
        label="Minimalist Abstract",
        description="Simple geometric shapes with minimal colors and clean composition",
        base_prompt=(
            "minimalist abstract art, geometric shapes, limited color palette, clean composition, "
            "negative space, modern art, simple forms"
        ),
        engines=ALL_ENGINES,
    ),
)


def _style_refs(style_id: str) -> list[str]:
    return [f"/reference-images/{style_id}/{n}.png" for n in (1, 2, 3)]


DEFAULT_TEMPLATES: dict[str, dict] = {
    "cyan_sketchline_vector": {
        "template_data": {
            "template_type": "structured",
            "name": "Cool Cyan Vector Line Art",
            "color_mode": "default",
            "style_enforcement": {
                "style_rules": (
                    "vector line art with smooth curves and minimal details, using bold cyan outlines and white "
                    "fill. Style is clean and modern with geometric shapes."
                ),
            },
        },
        "reference_images": _style_refs("cyan_sketchline_vector"),
    },
    "warm_orange_flat": {
        "template_data": {
            "template_type": "structured",
            "name": "Warm Orange Flat Illustration",
            "color_mode": "custom",
            "custom_colors": {
                "name": "Warm Orange Palette",
                "colors": [
                    {"id": "warm-orange-color-1", "name": "Warm Orange", "value": "#FF6B35",
                     "usage": "primarily for main subject and focal points"},
                    {"id": "warm-orange-color-2", "name": "Soft Cream", "value": "#FFF8E7",
                     "usage": "for backgrounds and negative space"},
                    {"id": "warm-orange-color-3", "name": "Deep Brown", "value": "#4A3F35",
                     "usage": "for outlines and text elements"},
                ],
            },
            "style_enforcement": {
                "style_rules": (
                    "flat illustration with simple geometric shapes and minimal gradients. Style is warm, "
                    "friendly, and approachable."
                ),
            },
        },
        "reference_images": _style_refs("warm_orange_flat"),
    },
    "simple_cyan_test": {
        "template_data": {
            "template_type": "simple",
            "name": "Simple Cyan (Test)",
            "suffix": "white background, 8k resolution",
        },
        "reference_images": _style_refs("cyan_sketchline_vector"),
    },
    "cyan_sketchline_vector_v2": {
        "template_data": {
            "template_type": "universal",
            "name": "Sketchline Vector V2",
            "style_keywords": (
                "clean deep-blue (#002B5C) line art with consistent medium line weight and smooth rounded "
                "strokes, simple dot eyes and small curved mouth, no nose, flat white face area with no shading, "
                "flat 2D illustration, soft cyan-to-blue gradient fills on clothing and main objects, only small "
                "accent marks in cyan (#00AEEF), no textures, no shadows"
            ),
            "palette_mode": "loose",
            "loose_palette": (
                "Use a deep-blue line palette with soft cyan and blue accents. Apply gentle cyan-to-blue gradient "
                "fills on clothing and major objects. Avoid introducing any colors outside the blue-cyan family."
            ),
            "strict_palette": ["#002B5C", "#00AEEF", "#0084D7", "#FFFFFF"],
            "rules": (
                "Use deep-blue outlines for both characters and background. Restrict cyan to small accent marks. "
                "Keep backgrounds simple and clean. No text, no watermarks, no extra characters."
            ),
            "negative_prompt": (
                "excessive cyan outlines, cyan background lines, bad proportions, distorted limbs, extra faces, "
                "inconsistent character identity, blurry, noisy, cluttered background, text, watermark"
            ),
        },
        "reference_images": _style_refs("cyan_sketchline_vector"),
    },
}


def get_built_in_style(style_id: str) -> StyleDescriptor | None:
    for style in BUILT_IN_STYLES:
        if style.id == style_id:
            return style
    return None
