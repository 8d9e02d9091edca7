"""Stage catalogues for the construction and interior workflows."""

from __future__ import annotations

from genstudio.schemas.models import StageOutcome, StagePlan

# ---------------------------------------------------------------------------
# Construction: reverse-chronological, completed house back to bare land
# ---------------------------------------------------------------------------

CONSTRUCTION_BASE_PROMPT = (
    "Exact same house as the reference image, minimalist modern design in a rice field setting, "
    "identical architecture, size and proportions, identical camera angle, lens and perspective, "
    "identical location, background and horizon, no redesign, no style change, "
    "realistic and civil-engineering accurate construction, continue from the previous image"
)

_CONSTRUCTION_STAGES = [
    # (key, order, name, stage prompt, strength)
    (
        "completed-house", 1, "Landscaping & Exterior Walkways (Completed House Reference)",
        "the finished house with its elevated wooden walkway through the rice field, "
        "greenery around the deck, outdoor furniture and lighting in place",
        0.0,
    ),
    (
        "final-finishing-accents", 2, "Final Finishing & Accents",
        "landscaping removed, walkway and furniture gone, walls painted, vertical wood cladding "
        "and exterior light fittings being installed, bare soil around the base",
        0.3,
    ),
    (
        "fenestration-decking", 3, "Fenestration (Doors & Windows) & Decking",
        "walls rendered in grey unpainted cement, glass doors and windows being fitted, "
        "wooden deck boards partially laid",
        0.35,
    ),
    (
        "wall-construction-rendering", 4, "Wall Construction & Rendering",
        "brick walls built between the columns, partial cement rendering, empty window and door "
        "openings, scaffolding along the facade",
        0.35,
    ),
    (
        "roofing-eave-paneling", 5, "Roofing & Eave Paneling",
        "roof covering and eave panels being installed on the frame, no walls yet, "
        "open structure visible below the roof",
        0.35,
    ),
    (
        "structural-framing", 6, "Structural Framing",
        "reinforced concrete columns and beams standing on the raised foundation, "
        "no roof and no walls, formwork and rebar visible",
        0.4,
    ),
    (
        "foundation-site-preparation", 7, "Foundation & Site Preparation",
        "leveled and compacted plot with piles and a raised concrete foundation platform, "
        "survey stakes and building materials on site",
        0.4,
    ),
    (
        "bare-land", 8, "Bare Land (Empty Plot)",
        "empty plot of land in the rice field, no structures, no materials, untouched ground",
        0.45,
    ),
]

CONSTRUCTION_VIDEO_PROMPTS = {
    (8, 7): "Site preparation begins: workers survey and level the plot, drive piles and pour the raised foundation.",
    (7, 6): "Concrete columns and beams rise from the foundation as formwork is set and poured.",
    (6, 5): "Roof trusses are lifted onto the frame and the roof covering and eave panels are installed.",
    (5, 4): "Brick walls are laid between the columns and cement rendering spreads across them.",
    (4, 3): "Doors and windows are fitted into the openings and the wooden deck is laid.",
    (3, 2): "Exterior walls are painted white, wood cladding and light fittings are mounted.",
    (2, 1): "Landscaping is planted, the walkway is built across the rice field and furniture is placed.",
}

CONSTRUCTION_VIDEO_TITLES = {
    (8, 7): "Bare Land → Foundation & Site Preparation",
    (7, 6): "Foundation → Structural Framing",
    (6, 5): "Structural Framing → Roofing Structure",
    (5, 4): "Roofing Structure → Walls & Rendering",
    (4, 3): "Wall Rendering → Fenestration & Decking",
    (3, 2): "Fenestration → Final Finishing",
    (2, 1): "Final Finishing → Completed House & Landscaping",
}


def build_construction_prompt(stage_prompt: str, base_prompt: str | None = None) -> str:
    return f"{base_prompt or CONSTRUCTION_BASE_PROMPT}, {stage_prompt}"


def construction_stage_plans(base_prompt: str | None = None) -> list[StagePlan]:
    """The eight construction stages in generation order (completed house first)."""
    return [
        StagePlan(
            key=key,
            order=order,
            name=name,
            prompt=build_construction_prompt(prompt, base_prompt),
            strength=strength,
            pass_through=order == 1,
        )
        for key, order, name, prompt, strength in _CONSTRUCTION_STAGES
    ]


def describe_construction_transition(start: StageOutcome, end: StageOutcome) -> tuple[str, str]:
    """Return (prompt, title) for the video from ``start`` to ``end``."""
    pair = (start.order, end.order)
    prompt = CONSTRUCTION_VIDEO_PROMPTS.get(
        pair,
        f"Construction timelapse from stage {start.order} to stage {end.order}, "
        "smooth transformation showing construction progress.",
    )
    title = CONSTRUCTION_VIDEO_TITLES.get(pair, f"Stage {start.order} → Stage {end.order}")
    return prompt, title


# ---------------------------------------------------------------------------
# Interior: empty room -> furnished room, one transformation video
# ---------------------------------------------------------------------------

INTERIOR_BASE_PROMPT = (
    "Photorealistic single interior room, static eye-level camera, same lens and framing, "
    "no layout or architecture changes, consistent lighting."
)
DEFAULT_START_FRAME_PROMPT = (
    "Empty interior with finished walls, ceiling and floor, no furniture, no decor, no people, "
    "neutral daylight."
)
DEFAULT_END_FRAME_PROMPT = (
    "Fully furnished and decorated interior, furniture in place, rugs, cushions, wall art and plants, "
    "warm natural light."
)
DEFAULT_INTERIOR_VIDEO_PROMPT = (
    "Furniture and decor gradually appear and settle into their final positions while the camera "
    "stays completely still."
)
INTERIOR_VIDEO_TITLE = "Start Frame → End Frame Transformation"

# Durations offered per video model for the interior video
VIDEO_MODEL_DURATIONS = {
    "Kling O1": (["5s", "10s"], "5s"),
    "Kling 2.6": (["5s", "10s"], "5s"),
    "Kling 2.5 Turbo": (["5s", "10s"], "5s"),
    "Veo 3": (["4s", "6s", "8s"], "6s"),
    "Veo 3.1": (["4s", "6s", "8s"], "6s"),
    "Veo 3 Fast": (["4s", "6s", "8s"], "4s"),
}


def build_interior_prompt(prompt: str) -> str:
    return f"{INTERIOR_BASE_PROMPT} {prompt}"


def interior_stage_plans(start_prompt: str | None = None, end_prompt: str | None = None) -> list[StagePlan]:
    return [
        StagePlan(
            key="start-frame",
            order=1,
            name="Start Frame",
            prompt=build_interior_prompt(start_prompt or DEFAULT_START_FRAME_PROMPT),
        ),
        StagePlan(
            key="end-frame",
            order=2,
            name="End Frame",
            prompt=build_interior_prompt(end_prompt or DEFAULT_END_FRAME_PROMPT),
        ),
    ]


def interior_transition_describer(video_prompt: str | None = None):
    prompt = build_interior_prompt(video_prompt or DEFAULT_INTERIOR_VIDEO_PROMPT)

    def describe(start: StageOutcome, end: StageOutcome) -> tuple[str, str]:
        return prompt, INTERIOR_VIDEO_TITLE

    return describe


def default_video_duration(model_name: str) -> str:
    return VIDEO_MODEL_DURATIONS.get(model_name, (["5s", "10s"], "5s"))[1]
