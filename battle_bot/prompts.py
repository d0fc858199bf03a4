"""Prompt text for match, finale and story comic artifacts."""

from __future__ import annotations

from collections.abc import Sequence

from .models import BattleSettings, Contestant

PLACEHOLDER_NARRATIVE = "The fighters clash!"


def pre_fight_prompt(
    first: Contestant, second: Contestant, settings: BattleSettings
) -> str:
    return (
        f"STYLE: {settings.style} comic book art.\n"
        "SCENE: Intense stare-down before the fight. Split screen or close-up face-off.\n"
        f"ARENA: {settings.arena} background.\n"
        "INSTRUCTIONS:\n"
        f"- {first.display_name} (REFERENCE 1) on the left, "
        f"{second.display_name} (REFERENCE 2) on the right.\n"
        '- High tension, dramatic lighting, "VS" energy.\n'
        "- Maintain character likeness."
    )


def narrative_prompt(
    first: Contestant, second: Contestant, settings: BattleSettings
) -> str:
    lines = [
        "Write a short, intense battle scene (max 50 words) between two fighters "
        f"in {settings.arena} ({settings.genre} style).",
        f"Fighter 1: {first.display_name}",
        f"Fighter 2: {second.display_name}",
    ]
    if first.team and second.team:
        lines.append(f"Teams: {first.team} vs {second.team}")
    lines.append("Describe the action vividly. Who strikes first? What is the clash like?")
    return "\n".join(lines)


def narrative_context(history: Sequence[str]) -> str:
    if not history:
        return "This is the opening fight of the tournament."
    recap = "\n".join(f"- {entry}" for entry in history)
    return f"Earlier fights in this tournament:\n{recap}"


def action_prompt(narrative: str, settings: BattleSettings) -> str:
    return (
        f"STYLE: {settings.style} comic book art, dynamic action shot.\n"
        f"SCENE: {narrative}\n"
        f"ARENA: {settings.arena}\n"
        "INSTRUCTIONS:\n"
        "- Show FIGHTER 1 (REFERENCE 1) fighting FIGHTER 2 (REFERENCE 2).\n"
        "- Maintain character likeness from references.\n"
        "- High energy, impact lines, dramatic lighting."
    )


def montage_prompt(winner: Contestant, settings: BattleSettings) -> str:
    return (
        f"STYLE: {settings.style} comic book page, 3 distinct panels.\n"
        f"SUBJECT: Highlights of {winner.display_name}'s tournament victory.\n"
        "Panel 1: A fierce clash in the early rounds.\n"
        "Panel 2: A desperate moment turned into a counter-attack.\n"
        "Panel 3: The final winning strike.\n"
        f"ARENA: {settings.arena}.\n"
        "INSTRUCTIONS: Use REFERENCE 1 for the main character."
    )


def cover_prompt(winner: Contestant, settings: BattleSettings) -> str:
    return (
        f"STYLE: {settings.style} comic book full-page back cover art.\n"
        f"SCENE: {winner.display_name} celebrating their victory in {settings.arena}.\n"
        "ACTION: They are holding a golden crown.\n"
        "ATMOSPHERE: Triumphant, epic, cinematic lighting.\n"
        'TEXT: "CHAMPION" integrated into the art.\n'
        "INSTRUCTIONS: Use REFERENCE 1 for the character."
    )


def victory_video_prompt(winner: Contestant, settings: BattleSettings) -> str:
    return (
        f"Create a cinematic victory video for {winner.display_name}.\n"
        f"Setting: {settings.arena}.\n"
        "Action: The champion stands triumphant, raising their arms in victory. "
        "Confetti falls.\n"
        f"Style: {settings.style} animation."
    )


def story_stage(page: int, total: int, *, decision: bool) -> str:
    if page == total:
        return "FINAL PAGE. Karmic cliffhanger; the caption must end with 'TO BE CONTINUED...'."
    if decision:
        return (
            "End with a psychological choice about values or risk. "
            "The options must not be simple physical actions."
        )
    if page == 1:
        return "INCITING INCIDENT. Establish the mood."
    if page <= 4:
        return "RISING ACTION. Focus on dialogue and challenges."
    if page <= 8:
        return "COMPLICATION. A twist occurs!"
    return "CLIMAX. The confrontation."


def story_beat_prompt(
    page: int,
    total: int,
    *,
    genre: str,
    tone: str,
    has_costar: bool,
    history: Sequence[str],
    decision: bool,
) -> str:
    costar = (
        "ACTIVE and PRESENT. Weave them into the scene."
        if has_costar
        else "Not yet introduced."
    )
    recap = "\n".join(history) if history else "Start the adventure."
    choices = ',\n  "choices": ["Option A", "Option B"]' if decision else ""
    return (
        f"You are writing a comic book script. PAGE {page} of {total}.\n"
        f"GENRE: {genre}. TONE: {tone}.\n\n"
        "CHARACTERS:\n- HERO: Active.\n"
        f"- CO-STAR: {costar}\n\n"
        f"PREVIOUS PANELS:\n{recap}\n\n"
        "RULES: No repetition. If the co-star is active they appear often. Vary the scenes.\n"
        f"INSTRUCTION: Continue the story. {story_stage(page, total, decision=decision)}\n\n"
        "OUTPUT STRICT JSON ONLY:\n"
        "{\n"
        '  "caption": "Narrator text, max 25 words.",\n'
        '  "dialogue": "Speech, max 20 words. Optional.",\n'
        '  "scene": "Vivid visual description mentioning HERO or CO-STAR when present.",\n'
        '  "focus_char": "hero" | "friend" | "other"'
        f"{choices}\n"
        "}"
    )


def comic_panel_prompt(
    kind: str,
    genre: str,
    *,
    scene: str = "",
    caption: str = "",
    dialogue: str = "",
    has_costar: bool = False,
) -> str:
    lines = [f"STYLE: {genre} comic book art, detailed ink, vibrant colors."]
    if kind == "cover":
        lines.append('TYPE: Comic book cover. TITLE: "INFINITE HEROES".')
        lines.append("Main visual: dynamic action shot of the HERO (REFERENCE 1).")
    elif kind == "back_cover":
        lines.append('TYPE: Comic back cover, full-page vertical art. TEXT: "NEXT ISSUE SOON".')
    else:
        lines.append(f"TYPE: Vertical comic panel. SCENE: {scene}")
        references = "HERO is REFERENCE 1."
        if has_costar:
            references += " CO-STAR is REFERENCE 2."
        lines.append(f"INSTRUCTIONS: Maintain strict character likeness. {references}")
        if caption:
            lines.append(f'INCLUDE CAPTION BOX: "{caption}"')
        if dialogue:
            lines.append(f'INCLUDE SPEECH BUBBLE: "{dialogue}"')
    return "\n".join(lines)


__all__ = [
    "PLACEHOLDER_NARRATIVE",
    "action_prompt",
    "comic_panel_prompt",
    "cover_prompt",
    "montage_prompt",
    "narrative_context",
    "narrative_prompt",
    "pre_fight_prompt",
    "story_beat_prompt",
    "story_stage",
    "victory_video_prompt",
]
