"""
Deterministic prompt builder for song generation.
build_prompt is pure: same brief in, same prompt out. brief_from_customization applies
the newest tweak amendment over the original brief without touching either row.
"""
import re
from dataclasses import dataclass, field

OCCASION_LABELS = {
    "valentines": "Valentine's Day",
    "birthday": "Birthday",
    "anniversary": "Anniversary",
    "wedding": "Wedding",
    "graduation": "Graduation",
    "just-because": "Just Because",
}

VOICE_STYLES = {
    "warm-male": "warm male vocalist with a rich baritone",
    "bright-female": "bright female vocalist with clear, energetic delivery",
    "soulful": "soulful vocalist with deep, emotional R&B-style delivery",
    "energetic": "powerful, energetic vocalist with dynamic range",
    "gentle": "soft, gentle vocalist with an intimate whisper-style delivery",
}

LANGUAGE_PROMPTS = {
    "en-GB": "standard British English accent",
    "en-GB-SCT": "Scottish English accent",
    "en-GB-WLS": "Welsh English accent",
    "en-IE": "Irish English accent",
    "en-US": "standard American English accent",
    "en-US-S": "Southern American English accent",
    "es": "Spanish language",
    "fr": "French language",
    "de": "German language",
    "it": "Italian language",
    "pt": "Portuguese language",
    "ja": "Japanese language",
    "ko": "Korean language",
}

TEMPO_PROMPTS = {
    "slow": "slow and gentle, approximately 70 BPM",
    "mid-tempo": "mid-tempo, approximately 100 BPM",
    "upbeat": "upbeat, approximately 120 BPM",
    "high-energy": "high energy, approximately 140 BPM",
}

RELATIONSHIP_CONTEXT = {
    "partner": "romantic partner",
    "friend": "close friend",
    "family": "family member",
    "colleague": "colleague or work friend",
}

DEFAULT_VOICE = "versatile vocalist"
DEFAULT_LANGUAGE = "British English accent"
DEFAULT_TEMPO = TEMPO_PROMPTS["mid-tempo"]

# (required moods, genre, tempo, direction) for combinations the model tends to muddle
STYLE_HINTS: tuple[tuple[frozenset[str], str, str, str], ...] = (
    (
        frozenset({"nostalgic"}), "electronic", "high-energy",
        "Think synthwave or retrowave with driving beats and vintage synth textures. "
        "Blend 80s nostalgia with modern electronic energy.",
    ),
    (
        frozenset({"romantic"}), "electronic", "high-energy",
        "Think euphoric dance-pop or progressive house with soaring melodic hooks and heartfelt vocal delivery.",
    ),
    (
        frozenset({"funny"}), "orchestral", "high-energy",
        "Think comedic film score or theatrical musical number with dramatic orchestral swells played for laughs.",
    ),
    (
        frozenset({"nostalgic"}), "electronic", "slow",
        "Think ambient electronica or downtempo chillwave with warm analog synth pads and dreamy, wistful textures.",
    ),
    (
        frozenset({"epic"}), "acoustic", "slow",
        "Think intimate acoustic ballad that builds to an emotionally powerful crescendo, like a stripped-back anthem.",
    ),
    (
        frozenset({"funny"}), "jazz", "high-energy",
        "Think swing-era big band comedy with playful horn stabs, scat vocals, and witty uptempo jazz.",
    ),
    (
        frozenset({"epic", "funny"}), "pop", "upbeat",
        "Think tongue-in-cheek pop anthem that is over-the-top and dramatic but self-aware and humorous.",
    ),
)

QUALITY_DIRECTIVE = (
    "Make it heartfelt, personal, and memorable. "
    "The lyrics should feel like they were written specifically for this person."
)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE_RUN = re.compile(r"\s{3,}")


@dataclass(frozen=True)
class PromptBrief:
    recipient_name: str
    your_name: str
    occasion: str
    genre: str
    song_length: int
    moods: tuple[str, ...] = field(default_factory=tuple)
    voice: str | None = None
    language: str | None = None
    tempo: str | None = None
    relationship: str | None = None
    song_title: str | None = None
    special_memories: str | None = None
    things_to_avoid: str | None = None
    pronunciation: str | None = None


def sanitise_input(text: str, max_length: int = 500) -> str:
    """Strip control characters, collapse whitespace runs, truncate."""
    cleaned = _CONTROL_CHARS.sub(" ", text)
    cleaned = _WHITESPACE_RUN.sub("  ", cleaned)
    return cleaned[:max_length].strip()


def find_style_hint(moods: tuple[str, ...], genre: str, tempo: str | None) -> str | None:
    for required, hint_genre, hint_tempo, hint in STYLE_HINTS:
        if hint_genre == genre and hint_tempo == tempo and required.issubset(moods):
            return hint
    return None


def build_prompt(brief: PromptBrief) -> str:
    occasion = OCCASION_LABELS.get(brief.occasion, brief.occasion)
    voice = VOICE_STYLES.get(brief.voice or "", DEFAULT_VOICE)
    language = LANGUAGE_PROMPTS.get(brief.language or "", DEFAULT_LANGUAGE)
    tempo = TEMPO_PROMPTS.get(brief.tempo or "", DEFAULT_TEMPO)
    relationship = RELATIONSHIP_CONTEXT.get(brief.relationship or "")
    recipient = sanitise_input(brief.recipient_name, 100)
    author = sanitise_input(brief.your_name, 100)

    lines = [f"A {' and '.join(brief.moods)} {brief.genre} song for {occasion}."]

    style_hint = find_style_hint(brief.moods, brief.genre, brief.tempo)
    if style_hint:
        lines.append(f"Style direction: {style_hint}")

    lines.append(f"Performed by a {voice} singing in {language}.")
    lines.append(f"Tempo: {tempo}.")

    if relationship:
        lines.append(f"Written by {author} for their {relationship}, {recipient}.")
    else:
        lines.append(f"Written by {author} as a gift for {recipient}.")

    if brief.pronunciation:
        pronunciation = sanitise_input(brief.pronunciation, 100)
        lines.append(f'Include {recipient} (pronounced "{pronunciation}") naturally in the lyrics.')
    else:
        lines.append(f"Include {recipient}'s name naturally in the lyrics.")

    if brief.song_title:
        lines.append(f'The song should be titled "{sanitise_input(brief.song_title, 100)}".')
    if brief.special_memories:
        lines.append(f"Weave in these personal details: {sanitise_input(brief.special_memories)}")
    if brief.things_to_avoid:
        lines.append(f"Avoid mentioning: {sanitise_input(brief.things_to_avoid, 200)}")

    lines.append(f"Duration: approximately {brief.song_length} seconds.")
    lines.append(QUALITY_DIRECTIVE)
    return "\n\n".join(lines)


def brief_from_customization(customization, tweak=None) -> PromptBrief:
    """Snapshot a Customization (plus optional CustomizationTweak) into a PromptBrief."""
    special_memories = customization.special_memories
    things_to_avoid = customization.things_to_avoid
    pronunciation = customization.pronunciation
    if tweak is not None:
        special_memories = tweak.special_memories or special_memories
        things_to_avoid = tweak.things_to_avoid or things_to_avoid
        pronunciation = tweak.pronunciation or pronunciation
    return PromptBrief(
        recipient_name=customization.recipient_name,
        your_name=customization.your_name,
        occasion=customization.occasion,
        genre=customization.genre,
        song_length=int(customization.song_length or 90),
        moods=tuple(customization.mood or ()),
        voice=customization.voice,
        language=customization.language,
        tempo=customization.tempo,
        relationship=customization.relationship,
        song_title=customization.song_title,
        special_memories=special_memories,
        things_to_avoid=things_to_avoid,
        pronunciation=pronunciation,
    )
