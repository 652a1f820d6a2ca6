"""Track identity helpers: key normalisation, fuzzy song matching and platform inference.

Scrobblers and video sites decorate the same recording in many ways
("Kill This Love (Official Music Video)", "BLACKPINK - Kill This Love M/V",
"Kill This Love (feat. X)"). Everything here reduces those spellings to one
comparable key.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

YOUTUBE = "youtube"
SPOTIFY = "spotify"
OTHER = "other"

FUZZY_MATCH_RATIO = 0.7

_PARENTHETICAL_NOISE = re.compile(
	r"[\(\[](?:official\s*(?:music\s*)?(?:video|audio)|lyrics?|visuali[sz]er|(?:feat|ft)\.?\s*[^\)\]]*)\s*[\)\]]",
	re.IGNORECASE,
)
_BARE_NOISE = re.compile(
	r"\b(?:official\s*(?:music\s*)?video|official\s*audio|m/?v|live)\b",
	re.IGNORECASE,
)
_FEATURE_SUFFIX = re.compile(r"\s(?:feat|ft)\.?\s.*$", re.IGNORECASE)
_VEVO_SUFFIX = re.compile(r"vevo$", re.IGNORECASE)
_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_ARTIST_SEPARATOR = re.compile(r"\s+[-–—]\s+")

_YOUTUBE_MARKERS = re.compile(
	r"official\s*(?:music\s*)?(?:video|audio)|music\s*video|\bm/?v\b",
	re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class TrackKey:
	artist: str
	title: str

	def __str__(self) -> str:
		return f"{self.artist}|{self.title}"


def _collapse(value: str) -> str:
	value = _NON_WORD.sub(" ", value)
	return _WHITESPACE.sub(" ", value).strip()


def clean_artist(artist: str) -> str:
	value = (artist or "").strip().lower()
	value = _FEATURE_SUFFIX.sub("", value)
	value = _VEVO_SUFFIX.sub("", value.strip())
	return _collapse(value)


def clean_title(title: str, artist: str = "") -> str:
	value = (title or "").strip().lower()
	cleaned_artist = clean_artist(artist)
	if cleaned_artist:
		parts = _ARTIST_SEPARATOR.split(value, maxsplit=1)
		if len(parts) == 2 and _collapse(parts[0]) == cleaned_artist:
			value = parts[1]
	value = _PARENTHETICAL_NOISE.sub(" ", value)
	value = _BARE_NOISE.sub(" ", value)
	value = _VEVO_SUFFIX.sub("", value.strip())
	value = _FEATURE_SUFFIX.sub("", value)
	return _collapse(value)


def normalize_track_key(title: str, artist: str) -> TrackKey:
	return TrackKey(artist=clean_artist(artist), title=clean_title(title, artist))


def track_key(title: str, artist: str) -> str:
	return str(normalize_track_key(title, artist))


def _fuzzy_titles_match(left: str, right: str) -> bool:
	# Order the pair independently of argument order so the check is symmetric
	shorter, longer = sorted((left, right), key=lambda value: (len(value), value))
	tokens = [token for token in shorter.split(" ") if len(token) > 1]
	if not tokens:
		return False
	hits = sum(1 for token in tokens if token in longer)
	return hits / len(tokens) >= FUZZY_MATCH_RATIO


def is_same_song(title_a: str, artist_a: str, title_b: str, artist_b: str) -> bool:
	if not (title_a or "").strip() or not (title_b or "").strip():
		return False
	key_a = normalize_track_key(title_a, artist_a)
	key_b = normalize_track_key(title_b, artist_b)
	if not key_a.title or not key_b.title:
		return False
	if key_a == key_b:
		return True
	return _fuzzy_titles_match(key_a.title, key_b.title)


def classify_platform(title: str, album_art: Optional[str] = None) -> str:
	if album_art and album_art.strip():
		return SPOTIFY
	if _YOUTUBE_MARKERS.search(title or ""):
		return YOUTUBE
	return OTHER


def matches_any(title: str, artist: str, candidates) -> bool:
	"""True when (title, artist) is the same song as any (name, artist) candidate."""
	return any(is_same_song(title, artist, name, cand_artist) for name, cand_artist in candidates)
