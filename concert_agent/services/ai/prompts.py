"""Prompt templates and output schema for event extraction."""

import json
from datetime import date

from concert_agent.core.enums import EventCategory

PROMPT_VERSION = "2.0"

# JSON Schema handed to the extraction backend
EVENTS_JSON_SCHEMA = {
    "type": "object",
    "properties": {
        "events": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "artist": {"type": "string", "description": "Clean performer/band name without tour names"},
                    "venue": {"type": "string", "description": "Normalized short venue name"},
                    "date": {"type": "string", "description": "ISO 8601 datetime"},
                    "ticket_url": {"type": ["string", "null"], "description": "URL to buy tickets, or null"},
                    "ticket_sale_date": {"type": ["string", "null"], "description": "ISO 8601 on-sale datetime, or null"},
                    "tickets_available": {"type": "boolean", "description": "true if on sale"},
                    "image_url": {"type": ["string", "null"], "description": "URL to artist/event image if found"},
                },
                "required": ["artist", "venue", "date"],
            },
        },
    },
    "required": ["events"],
}

CATEGORY_INSTRUCTIONS = {
    EventCategory.CONCERT: (
        "Extract ONLY music concerts and live music performances. "
        "EXCLUDE sports, comedy, theater, conferences, exhibitions, family shows."
    ),
    EventCategory.COMEDY: (
        "Extract ONLY stand-up comedy shows and comedy specials. "
        "EXCLUDE music concerts, theater, sports."
    ),
}

SYSTEM_PROMPT = """You extract event listings from web pages into JSON.

Output ONLY a JSON object with a single key "events" holding an array.
If the page lists no matching events, return {"events": []}.
Never invent events, URLs or dates that are not on the page.
"""


def build_extraction_prompt(
    category: EventCategory,
    source_name: str,
    today: date | None = None,
    default_time: str = "19:00",
) -> str:
    """
    Build the category-specific extraction instruction.

    Args:
        category: Which kind of events to keep.
        source_name: Human-readable source name, included as context.
        today: Reference date for resolving year-less dates.
        default_time: Time of day to use when the page gives none.

    Returns:
        The instruction text.
    """
    today = today or date.today()
    return (
        f"{CATEGORY_INSTRUCTIONS[category]}\n"
        'Clean up artist names: remove tour names/subtitles (e.g. "Artist: TOUR NAME" -> "Artist").\n'
        "Normalize venue names to shortest recognizable form, remove city suffixes and sub-venues.\n"
        f"Today is {today.isoformat()}. Dates without a year are the next upcoming occurrence. "
        f"If no time given, use {default_time}. Extract ALL events including those not yet on sale.\n"
        f"Source: {source_name}"
    )


def build_page_prompt(instruction: str, page_text: str, max_chars: int = 60000) -> str:
    """Wrap page text and the instruction into a single user prompt."""
    if len(page_text) > max_chars:
        page_text = page_text[:max_chars]
    return f"""{instruction}

The JSON must match this schema:
{json.dumps(EVENTS_JSON_SCHEMA, indent=2)}

Page content:
---
{page_text}
---

Return ONLY the JSON object."""
