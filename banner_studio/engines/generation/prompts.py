"""Prompt templates for OpenAI analysis and Flux/OpenAI banner generation."""

from typing import Any, Dict, Optional, Sequence
import json

PRODUCT_ANALYSIS_PROMPT = """[PRODUCT ANALYSIS REQUEST]

You are a product marketing analyst. Describe the product in this image for use as
input to an AI banner generator.

[REQUIREMENTS]
- Product type and category
- Visual characteristics: colors, materials, textures, design
- Visible features, text, logos or branding
- Composition, lighting and presentation style
- Marketing appeal and likely target audience

[OUTPUT]
A single paragraph of 150-300 words, factual and marketing-oriented. Describe only
what is clearly visible."""


def _style_value(style: Dict[str, Any], section: str, key: str, default: str) -> str:
    value = (style.get(section) or {}).get(key)
    return value if isinstance(value, str) and value.strip() else default


def build_banner_prompt(
    partner_name: str,
    product_description: str,
    width: int,
    height: int,
    style_analysis: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Prompt for a text-free banner background with the product as an accent.

    Text, logo and CTA are drawn later by the editor, so the prompt keeps the
    left side clear for them.
    """
    style = (style_analysis or {}).get("reference_style") or {}

    palette = _style_value(style, "color_composition", "primary_palette",
                           "professional blue and white colors")
    background = _style_value(style, "color_composition", "background_treatment",
                              "clean gradient background")
    left_side = _style_value(style, "color_composition", "left_side_background",
                             "solid color background optimized for text readability")
    right_side = _style_value(style, "color_composition", "right_side_background",
                              "complementary background allowing product visibility")
    fades = _style_value(style, "color_composition", "fade_effects",
                         "subtle gradient transitions from center to edges")
    tone = _style_value(style, "brand_personality", "tone",
                        _style_value(style, "brand_personality", "visual_tone", "professional and modern"))
    balance = _style_value(style, "layout_composition", "visual_balance", "balanced and clean layout")

    return f"""[BANNER BACKGROUND GENERATION - NO TEXT]

[STYLE ANALYSIS: {json.dumps(style)}]

[PRODUCT DESCRIPTION: {product_description}]

[BANNER REQUIREMENTS]
- Dimensions: {width}x{height} pixels, horizontal marketing banner
- Brand: {partner_name}
- Tone: {tone}
- Layout: {balance}
- Color palette: {palette}
- Background: {background}

[RULES]
- No text, words or letters anywhere in the image
- Left 60%: {left_side}; reserved for logo, headline and CTA
- Right 40%: {right_side}; product placement area
- Transitions: {fades}
- The product takes at most 20% of the banner, center-right or right
- High contrast in the areas where text will be placed
- Commercial-grade lighting and composition for digital advertising"""


# =============================================================================
# Reference style analysis
# =============================================================================

STYLE_SECTIONS = {
    "color_palette": [
        "dominant_colors", "accent_colors", "secondary_colors", "color_intensity",
        "color_temperature", "color_harmony", "brand_color_usage",
    ],
    "background_treatment": [
        "base_type", "gradient_details", "environmental_elements", "depth_treatment",
        "overlay_treatment", "texture_details", "lighting_approach", "atmosphere_style",
    ],
    "design_components": [
        "geometric_elements", "decorative_elements", "structural_lines", "pattern_details",
        "dimensional_effects", "border_treatments", "accent_graphics", "iconographic_elements",
    ],
    "photo_integration": [
        "person_placement", "photo_background_blend", "photo_treatment", "scale_relationship",
        "cutout_style", "photo_effects", "integration_quality",
    ],
    "composition_structure": [
        "visual_weight", "focal_areas", "space_usage", "layout_grid",
        "hierarchy_flow", "balance_approach", "negative_space",
    ],
    "brand_personality": [
        "visual_tone", "sophistication_level", "energy_level", "approachability",
        "innovation_vs_tradition", "premium_vs_accessible",
    ],
    "technical_specifications": [
        "aspect_ratio", "resolution_quality", "color_profile", "contrast_levels",
        "saturation_approach", "sharpness_style",
    ],
}


def build_style_analysis_prompt(partner_name: str, description: Optional[str], regions: Sequence[str]) -> str:
    """Ask for the visual design DNA of the reference banners as one JSON object."""
    schema = {
        "reference_style": {
            section: {key: "..." for key in keys}
            for section, keys in STYLE_SECTIONS.items()
        }
    }
    return f"""[REFERENCE BANNER STYLE ANALYSIS]

You are a brand and marketing analyst specializing in visual identity. Analyze the
reference banner images for "{partner_name}" and extract the style that new
marketing banners should follow.

[PARTNER CONTEXT]
- Company: {partner_name}
- Description: {description or 'Not provided'}
- Target regions: {', '.join(regions) or 'Not provided'}

[INSTRUCTIONS]
- Examine every image and describe only what is actually visible
- Give exact hex codes for colors (e.g. '#0066cc')
- Be precise about gradient directions, positions and proportions
- Focus on background design, photo treatment and layout composition
- Ignore text content, logos and brand names

[OUTPUT]
Return only a JSON object with exactly this structure, every value a short string:

{json.dumps(schema, indent=2)}"""


# =============================================================================
# Flux layers
# =============================================================================

def build_background_prompt(style_analysis: Optional[Dict[str, Any]] = None, width: int = 1440,
                            height: int = 352) -> str:
    """
    Background-only banner prompt: a calm, brighter center for the product
    overlay and stronger color and pattern toward the edges.
    """
    style = (style_analysis or {}).get("reference_style") or {}

    primary = _style_value(style, "color_palette", "dominant_colors", "#0072B8, #004A99")
    accents = _style_value(style, "color_palette", "accent_colors", "#00A3E0, #66B2FF")
    details = _style_value(style, "color_palette", "secondary_colors", "#E6F3FF, #B3D9FF")
    temperature = _style_value(style, "color_palette", "color_temperature", "cool and professional")
    base_type = _style_value(style, "background_treatment", "base_type", "professional gradient")
    atmosphere = _style_value(style, "background_treatment", "atmosphere_style", "clean modern professional")
    texture = _style_value(style, "background_treatment", "texture_details", "smooth professional finish")
    patterns = _style_value(style, "design_components", "pattern_details", "minimal professional patterns")
    tone = _style_value(style, "brand_personality", "visual_tone", "professional and modern")

    warm = temperature.strip().lower().startswith("warm")
    edge_fade = "soft shadows" if warm else "gentle gradients"
    edge_intensity = "20% darker" if warm else "15% more saturated"

    return f"""Professional banner background with CENTER FOCUS and EDGE CONTRAST. Color palette: {primary} (dominant), {accents} (accents), {details} (details).

[COMPOSITION]
- Center spotlight: a clear 400x200px center area that is brighter and less busy, for the product overlay
- Edge fade: gradually fade to {edge_fade} at all four edges; borders {edge_intensity} than the center

[COLORS]
- {primary} dominates (70% of the design)
- {accents} for patterns and highlights, {details} for depth
- {temperature} color temperature throughout; only the colors above

[EDGES AND PATTERNS]
- Full {patterns} at the borders, half intensity in a 100px transition zone
- Minimal patterns in the center; patterns guide the eye toward it

[TECHNICAL]
- Banner dimensions: {width}x{height}px
- {tone} mood with {atmosphere} atmosphere
- {base_type} base with {texture}

[RESTRICTIONS]
- No landscapes, skies, vehicles, buildings, objects or people
- No photographic or realistic elements
- No text, logos, symbols or writing anywhere
- Simple abstract design optimized for product overlay"""


def build_product_cutout_prompt(product_description: str) -> str:
    """Prompt for an isolated, square product image on a transparent background."""
    return f"""Create a product cutout image with a transparent background, for overlay on banner backgrounds.

[REQUIREMENTS]
- Completely transparent background; no colors, patterns, shadows or environment
- Only the product, perfectly isolated, in professional studio lighting
- Clean, crisp, anti-aliased edges
- Square 1:1 aspect ratio

[PRODUCT]
{product_description}

The result should look like a professionally cut-out product photo that can be laid
over any background without visible edges or artifacts."""


# =============================================================================
# OpenAI banner (3:2, full design with text)
# =============================================================================

def build_comprehensive_prompt(
    partner_name: str,
    promotional_text: str,
    cta_text: str,
    partner_url: Optional[str] = None,
    benefits: Sequence[str] = (),
    promotion_discount: Optional[str] = None,
    custom_prompt: Optional[str] = None,
    brand_colors: Optional[Dict[str, str]] = None,
    has_logo: bool = False,
    has_reference_banners: bool = False,
    has_product_photos: bool = False,
    reference_image_count: int = 0,
) -> str:
    """Full 3:2 banner: logo and message left, products center, discount and CTA right."""
    lines = [
        f'Create a professional, high-impact promotional banner in exactly 3:2 aspect ratio '
        f'(landscape format) for "{partner_name}".',
        "",
        "BUSINESS CONTEXT (for understanding only - DO NOT display this text):",
        f"- Company: {partner_name}",
    ]
    if partner_url:
        lines.append(f"- Website: {partner_url}")
    if benefits:
        lines.append(f"- Business benefits/services: {', '.join(benefits)}")

    lines += [
        "",
        "LAYOUT:",
        "- Aspect ratio: exactly 3:2 (1536x1024 pixels)",
        "- Padding: 40px from all edges (inner content area 1456x944)",
        f'- LEFT (364px): company logo centered at 25% from the top (max 120px high); '
        f'"{promotional_text}" centered below it in bold type',
        "- CENTER (728px): product visuals centered both ways; several products in a balanced grid",
        f'- RIGHT (364px): discount (if any) in the upper part, then "{cta_text}" as a prominent button',
        "- Consistent baselines across sections and clear breathing room between them",
        "",
        "TEXT TO DISPLAY (use only this text):",
        f'- Main message: "{promotional_text}"',
        f'- Call-to-action: "{cta_text}"',
    ]
    if promotion_discount and promotion_discount.strip():
        lines.append(f'- Discount: "{promotion_discount.strip()}" (highlight prominently)')

    if reference_image_count > 0:
        lines += ["", f"REFERENCE IMAGES ({reference_image_count} provided):"]
        if has_logo:
            lines.append("- Logo: use in the LEFT section")
        if has_reference_banners:
            lines.append("- Style reference: follow the visual approach")
        if has_product_photos:
            lines.append("- Product images: feature in the CENTER section")
        lines.append("Integrate these images as actual elements in the design.")

    colors = "- Colors: professional, high-contrast palette"
    primary = (brand_colors or {}).get("primary")
    secondary = (brand_colors or {}).get("secondary")
    if primary:
        colors += f" (primary: {primary}" + (f", secondary: {secondary}" if secondary else "") + ")"
    lines += [
        "",
        "DESIGN QUALITY:",
        "- Typography: premium fonts sized for a 3:2 landscape banner",
        "- Hierarchy: logo small, promotional text large, CTA prominent",
        colors,
        "- Product staging: professional product photography styling",
    ]

    if custom_prompt and custom_prompt.strip():
        lines += ["", f"CUSTOM REQUIREMENTS: {custom_prompt.strip()}"]

    lines += [
        "",
        "Only display the specified promotional text, discount and CTA; no additional text.",
        f"Create a professional 3:2 landscape marketing banner for {partner_name} following these specifications.",
    ]
    return "\n".join(lines)
