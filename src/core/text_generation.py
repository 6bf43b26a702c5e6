from typing import List, Optional

from openai import AsyncOpenAI
from loguru import logger

from src.core.config import get_settings

settings = get_settings()

_client: Optional[AsyncOpenAI] = None


def get_client() -> Optional[AsyncOpenAI]:
    """Get the shared OpenAI client, or None when no API key is configured."""
    global _client
    if not settings.openai_api_key:
        return None
    if _client is None:
        _client = AsyncOpenAI(api_key=settings.openai_api_key)
    return _client


def fallback_icebreakers(interests_a: List[str], interests_b: List[str]) -> List[str]:
    """Deterministic icebreakers used when the model is unavailable."""
    shared = next((interest for interest in interests_a if interest in interests_b), None)
    return [
        f"Hey! I see we both like {shared or 'hanging out'}.",
        "What's the best thing you've done recently?",
        "Hi! How is your week going?",
    ]


def fallback_safety_message(user_name: str, friend_name: str, place: str, time: str) -> str:
    """Deterministic safety alert body used when the model is unavailable."""
    return (
        f"EMERGENCY ALERT: {user_name} triggered a safety alert.\n"
        f"Meeting: {friend_name}\n"
        f"Location: {place}\n"
        f"Time: {time}"
    )


async def _complete(prompt: str, temperature: float) -> str:
    client = get_client()
    response = await client.chat.completions.create(
        model=settings.openai_model,
        messages=[
            {"role": "system", "content": "You are a warm, concise assistant for a friendship app."},
            {"role": "user", "content": prompt},
        ],
        temperature=temperature,
    )
    return response.choices[0].message.content or ""


async def generate_icebreakers(interests_a: List[str], interests_b: List[str]) -> List[str]:
    """Generate three conversation starters for a new match.

    Returns:
        Exactly three strings. Falls back to fixed text when the API key is
        missing, the call fails, or the model returns fewer than three lines.
    """
    if get_client() is None:
        logger.warning("OpenAI API key not set. Using fallback icebreakers.")
        return fallback_icebreakers(interests_a, interests_b)

    prompt = f"""Generate 3 short, friendly, and engaging conversation starters (icebreakers) for two potential friends.
Person A likes: {', '.join(interests_a) or 'nothing listed'}.
Person B likes: {', '.join(interests_b) or 'nothing listed'}.
Focus on shared interests if any, or general friendly topics.
Return ONLY the 3 sentences separated by newlines. No numbering."""

    try:
        text = await _complete(prompt, temperature=0.8)
        lines = [line.strip() for line in text.split("\n") if line.strip()]
        if len(lines) < 3:
            logger.warning(f"Model returned {len(lines)} icebreakers, using fallback")
            return fallback_icebreakers(interests_a, interests_b)
        return lines[:3]
    except Exception as e:
        logger.error(f"Error generating icebreakers: {e}")
        return fallback_icebreakers(interests_a, interests_b)


async def compose_safety_message(
    user_name: str,
    friend_name: str,
    place: str,
    time: str,
    notes: Optional[str] = None,
) -> str:
    """Compose the body of a safety alert sent to trusted contacts."""
    if get_client() is None:
        logger.warning("OpenAI API key not set. Using fallback safety message.")
        return fallback_safety_message(user_name, friend_name, place, time)

    prompt = f"""Compose a concise, urgent, but clear email body for a safety alert.
User '{user_name}' is meeting '{friend_name}' at '{place}' at '{time}'.
Additional notes: {notes or 'None'}.
The email is to be sent to trusted contacts. State the location and time clearly."""

    try:
        text = (await _complete(prompt, temperature=0.2)).strip()
        if not text:
            return fallback_safety_message(user_name, friend_name, place, time)
        return text
    except Exception as e:
        logger.error(f"Error composing safety message: {e}")
        return fallback_safety_message(user_name, friend_name, place, time)
