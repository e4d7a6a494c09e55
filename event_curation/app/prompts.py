# event_curation/app/prompts.py

PROMPT_CLASSIFY_SYSTEM = (
    "You are a vision+text classifier. Determine if this Instagram item advertises "
    "a real-world event with BOTH a date and a venue. Return ONLY JSON."
)

PROMPT_CLASSIFY_RULES = """Rules:
- isEvent is true only when the image or caption announces a specific happening
  (party, concert, show, market, class, screening, ...) with a date AND a place.
- Generic promotions, menus, memes, reposts without a date, or venue photos are NOT events.
- confidence is your probability in [0,1] that isEvent is correct.
- reasons: short phrases, at most 10.
- signals.dateFound / signals.venueFound: whether a date / venue is visible or stated.

Respond with exactly this JSON shape:
{"isEvent": bool, "confidence": number, "reasons": [string], "signals": {"dateFound": bool, "venueFound": bool}}"""

PROMPT_CLASSIFY_CAPTION = "Caption: {caption}"

PROMPT_EXTRACT_SYSTEM = """You read event flyers and return structured data as a single JSON object.

Return exactly these keys:
{
  "name": string,                       // event title as printed
  "date": {"start": string, "end": string|null},   // ISO-8601 local date-times; infer the year from context
  "venue": {"name": string, "address": string|null},
  "pricing": {"min": number|null, "max": number|null, "currency": string|null, "notes": string|null} | null,
  "tags": [string],                     // genres / categories, lower-case
  "searchText": string,                 // one paragraph combining name, performers, venue, genres and date for search
  "rawText": string                     // all legible text from the flyer
}

Use the caption and username context to fill gaps the image leaves open.
If something is not present, use null (or [] for tags). Output JSON only, no markdown."""
