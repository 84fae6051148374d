"""
Prompt builders for shot breakdowns, added shots, title cards and
music-video treatments.
"""

from typing import List

UNIT_SYSTEM_PROMPT = """You are a film director's shot planner.
Write shots as single descriptive sentences a storyboard artist can draw.
Refer to characters, locations, props and wardrobe ONLY by the @handles listed in REFERENCES.
Never invent a new @handle. Establishing and transition shots may use no handles at all."""

ADDITIONAL_SHOTS_SYSTEM_PROMPT = """You are a film director's shot planner adding coverage to an existing shot list.
New shots must not repeat existing shots.
Refer to entities ONLY by the @handles listed in REFERENCES."""

TITLE_CARD_SYSTEM_PROMPT = """You are a title designer creating opening title cards for film chapters.
Describe each card's typography, layout and motion in one or two sentences."""

TREATMENT_SYSTEM_PROMPT = """You are a music video director pitching treatments to an artist.
Each treatment must be visually distinct and achievable."""

CAMERA_MINIMIZE = "IMPORTANT: Minimize detailed camera movement descriptions."
COLOR_MINIMIZE = "IMPORTANT: Minimize detailed color palette and lighting descriptions."

TITLE_CARD_FORMATS = {
    "full": "Use the full chapter title.",
    "name-only": "Use only the chapter name, without a number.",
    "roman-numerals": "Show the chapter number as a roman numeral.",
}


def _option_lines(include_camera_style: bool, include_color_palette: bool) -> List[str]:
    lines = []
    if not include_camera_style:
        lines.append(CAMERA_MINIMIZE)
    if not include_color_palette:
        lines.append(COLOR_MINIMIZE)
    return lines


def build_unit_prompt(
    unit,
    reference_block: str,
    style_profile: str,
    shot_count: int,
    max_additional: int,
    is_lyrics: bool,
    director_notes: str = "",
    treatment=None,
    include_camera_style: bool = True,
    include_color_palette: bool = True
) -> str:
    noun = "song section" if is_lyrics else "chapter"
    label = unit.section_type if is_lyrics else unit.beat
    lines = [
        f"Break down this {noun} into about {shot_count} shots in shooting order.",
        f"TITLE: {unit.title}" + (f" ({label})" if label else ""),
        "",
        "DIRECTOR STYLE:",
        style_profile,
        f"DIRECTOR NOTES: {director_notes or 'None'}",
    ]
    if treatment is not None:
        lines += ["", "TREATMENT:", treatment.to_prompt()]
    lines += [
        "",
        "REFERENCES:",
        reference_block,
        "",
        "Also return coverage_analysis: what the shot list covers and what it leaves out.",
        f"List up to {max_additional} additional_opportunities: shot ideas you considered but left out.",
    ]
    lines += _option_lines(include_camera_style, include_color_palette)
    lines += ["", f"{noun.upper()} TEXT:", unit.text.strip()]
    return "\n".join(lines)


def build_additional_shots_prompt(
    unit,
    existing_shots: List[str],
    reference_block: str,
    style_profile: str,
    categories: List[str],
    custom_request: str,
    count: int,
    include_camera_style: bool = True,
    include_color_palette: bool = True
) -> str:
    existing = "\n".join(f"- {shot}" for shot in existing_shots) or "- (none)"
    lines = [
        f"Write {count} new shots for '{unit.title}'.",
        f"SHOT CATEGORIES: {', '.join(categories) if categories else 'any'}",
        f"REQUEST: {custom_request or 'General shot variety'}",
        "",
        "DIRECTOR STYLE:",
        style_profile,
        "",
        "REFERENCES:",
        reference_block,
        "",
        "EXISTING SHOTS:",
        existing,
    ]
    lines += _option_lines(include_camera_style, include_color_palette)
    lines += ["", "TEXT EXCERPT:", unit.text.strip()[:600]]
    return "\n".join(lines)


def build_title_card_prompt(unit, count: int, card_format: str, approaches: List[str], style_profile: str) -> str:
    return "\n".join([
        f"Design {count} title cards for the chapter '{unit.title}' (chapter {unit.ordinal}).",
        TITLE_CARD_FORMATS.get(card_format, TITLE_CARD_FORMATS["full"]),
        f"DESIGN APPROACHES: {', '.join(approaches) if approaches else 'designer choice'}",
        "Give each card a short style_label and a description.",
        "",
        "DIRECTOR STYLE:",
        style_profile,
    ])


def build_treatment_prompt(document, units, style_profile: str, artist: str, count: int) -> str:
    sections = "\n".join(
        f"- {unit.title} ({unit.section_type or 'section'})" for unit in units
    )
    return "\n".join([
        f"Pitch {count} music video treatments for '{document.title or 'Untitled'}'"
        + (f" by {artist}." if artist else "."),
        "For each give name, concept, visual_theme, performance_ratio (0 to 1, share of",
        "performance footage versus narrative) and hook_strategy (how the chorus is staged).",
        "",
        "DIRECTOR STYLE:",
        style_profile,
        "",
        "SECTIONS:",
        sections,
        "",
        "LYRICS:",
        document.text.strip(),
    ])
