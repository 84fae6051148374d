"""
Director style profiles.

A style is either a DirectorStyle record or a free-text hint. Either way
it only biases phrasing of descriptions and shots; it never adds
entities to a breakdown.

Usage:
    from palette.storyboard.director_style import build_director_style

    profile = build_director_style(DirectorStyle(name="Wes Anderson", ...))
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union

DEFAULT_STYLE_PROFILE = "Standard, balanced coverage focusing on clarity and storytelling."


@dataclass
class DirectorStyle:
    """Visual sensibility of a director used to color a breakdown."""
    name: str
    description: str = ""
    visual_language: str = ""
    camera_style: str = ""
    color_palette: str = ""
    narrative_focus: str = ""
    category: str = ""
    disciplines: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "visual_language": self.visual_language,
            "camera_style": self.camera_style,
            "color_palette": self.color_palette,
            "narrative_focus": self.narrative_focus,
            "category": self.category,
            "disciplines": list(self.disciplines),
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'DirectorStyle':
        return cls(
            name=data.get("name", ""),
            description=data.get("description", ""),
            visual_language=data.get("visual_language", ""),
            camera_style=data.get("camera_style", ""),
            color_palette=data.get("color_palette", ""),
            narrative_focus=data.get("narrative_focus", ""),
            category=data.get("category", ""),
            disciplines=list(data.get("disciplines") or []),
            tags=list(data.get("tags") or []),
        )


def build_director_style(
    style: Optional[Union[DirectorStyle, str]],
    include_camera_style: bool = True,
    include_color_palette: bool = True
) -> str:
    """
    Render a style as the profile block given to the model.

    Args:
        style: DirectorStyle, plain hint string, or None
        include_camera_style: keep camera-movement language
        include_color_palette: keep color-palette language

    Returns:
        Multi-line profile text
    """
    if style is None or (isinstance(style, str) and not style.strip()):
        return DEFAULT_STYLE_PROFILE
    if isinstance(style, str):
        return f"STYLE: {style.strip()}"

    visual = style.visual_language
    if include_camera_style and style.camera_style:
        visual = "; ".join(part for part in (visual, style.camera_style) if part)
    lines = [
        f"DIRECTOR: {style.name or 'Unknown'}",
        style.description and f"DESCRIPTION: {style.description}",
        visual and f"VISUAL LANGUAGE: {visual}",
        include_color_palette and style.color_palette and f"COLOR PALETTE: {style.color_palette}",
        style.narrative_focus and f"NARRATIVE FOCUS: {style.narrative_focus}",
        style.category and f"CATEGORY: {style.category}",
        style.disciplines and f"DISCIPLINES: {', '.join(style.disciplines)}",
        style.tags and f"STYLE TAGS: {', '.join(style.tags)}",
    ]
    return "\n".join(line for line in lines if line)


def style_name(style: Optional[Union[DirectorStyle, str]]) -> str:
    """Short label for logs and prompts."""
    if isinstance(style, DirectorStyle):
        return style.name
    return (style or "").strip()
