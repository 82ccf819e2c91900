"""Prompt builders for every AI call the narrative engine makes.

Keeping the wording here separates prompt engineering from the pipeline
code. Each builder is a pure function of its inputs.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from octanelog.core.models import Episode, VisionHints

NARRATIVE_PERSONA = (
    "Analyze this drive for the 'OctaneLog' series as my spirited AI Co-Pilot. "
    "Write a 2-paragraph narrative on the 'feel' and transition of the drive, "
    "followed by bulleted 'Co-Pilot Notes' on technical maneuvers and landmarks."
)

PRIVACY_RULE = (
    "STRICT PRIVACY RULE: Do not mention, transcribe, or approximate license plates, "
    "specific street numbers, or exact addresses. Use general descriptors (e.g., "
    "'a silver sedan,' 'the local grocery hub,' or 'a major intersection') to maintain "
    "total anonymity while capturing the drive's character."
)

MEDIA_GROUNDING_INSTRUCTION = (
    "Ground the narrative in what is actually visible in the attached footage. "
    "Describe the scenery, light and traffic you can see, and do not invent "
    "landmarks that are not on screen."
)


def _episode_log(episodes: Iterable[Episode]) -> str:
    return "\n".join(f"- {e.date.strftime('%Y-%m-%d')}: {e.summary}" for e in episodes)


def narrative_prompt(
    events: Sequence[str],
    theme: str,
    title: str,
    recurring_characters: Sequence[str] = (),
    vision_hints: VisionHints | None = None,
) -> str:
    """Prompt for a single drive's narrative.

    Args:
        events: Telemetry events in capture order.
        theme: Current season theme.
        title: Current season title.
        recurring_characters: Known recurring places, given as context.
        vision_hints: Optional on-device frame analysis to describe the
            footage without uploading it.
    """
    sections = [
        NARRATIVE_PERSONA,
        f"Series: '{title}' (theme: {theme}).",
    ]
    if recurring_characters:
        sections.append(f"Recurring places so far: {', '.join(recurring_characters)}.")
    sections.append(PRIVACY_RULE)
    if vision_hints is not None:
        sections.append(f"(Visual Analysis of the Footage):\n{vision_hints.summary()}")
    sections.append(
        "(Telemetry Events for Reference):\n" + "\n".join(f"- {event}" for event in events)
    )
    return "\n\n".join(sections)


def media_narrative_prompt(base_prompt: str) -> str:
    """Append the grounding instruction used when clips are attached."""
    return f"{base_prompt}\n\n{MEDIA_GROUNDING_INSTRUCTION}"


def recap_prompt(context: str, episodes: Sequence[Episode], period_type: str) -> str:
    """Prompt for a weekly, monthly or yearly recap."""
    return f"""You are the Narrator of a life-log series called '{context}'.

Current Task: Write a {period_type} Recap (e.g., "Weekly Update", "End of Month Review").

Source Material (Recent Episodes):
{_episode_log(episodes)}

Directives:
1. SYNTHESIS: Do not just list the events. Identify the pattern. Was it a busy week? A quiet one?
2. HIGHLIGHTS: Mention 1-2 standout moments or recurring locations ("The Coffee Shop" appeared 3 times).
3. TRANSITION: End with a forward-looking sentence about the next chapter.
4. LENGTH: Max 4 sentences.

Tone: Reflective, like a journal entry summarizing a chapter of life."""


def octane_soul_prompt(context: str, episodes: Sequence[Episode]) -> str:
    """Prompt asking for the yearly driver persona as JSON."""
    return f"""You are the Keeper of the Road.
Analyze the past year of driving logs for the user's series: '{context}'.

Source Material:
{_episode_log(episodes)}

Task: Create a 'Driver Persona' (OctaneSoul) based on these habits.

Return ONLY a raw JSON object (no markdown formatting) with this structure:
{{
    "soulTitle": "The [Adjective] [Noun]",
    "soulDescription": "A 2-sentence description of why this title fits, citing specific patterns"
}}"""


def season_theme_prompt(episodes: Sequence[Episode]) -> str:
    """Prompt asking for the current season theme, title and saga as JSON."""
    return f"""You are the Director of the 'OctaneLog' series.
Analyze the recent episodes to identify the current Season Theme.

Source Material:
{_episode_log(episodes)}

Task: Determine the current Season Theme, Title, and Saga Narrative based on the narrative arc so far.

Return ONLY a raw JSON object (no markdown formatting) with this structure:
{{
    "theme": "One Word Theme",
    "title": "Season Title",
    "sagaNarrative": "Two paragraphs summarizing the season's journey so far. Focus on the emotional arc, key recurring locations, and the evolution of the driving style. Make it sound epic and cinematic."
}}"""
