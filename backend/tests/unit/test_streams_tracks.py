import pytest

from streamroom.domain.streams import tracks


def test_normalize_strips_artist_prefix_and_video_noise():
	noisy = tracks.normalize_track_key("BLACKPINK - Kill This Love (Official Music Video)", "BLACKPINK")
	clean = tracks.normalize_track_key("Kill This Love", "BLACKPINK")
	assert noisy == clean
	assert str(clean) == "blackpink|kill this love"


def test_clean_artist_drops_features_and_vevo():
	assert tracks.clean_artist("BLACKPINKVEVO") == "blackpink"
	assert tracks.clean_artist("LISA feat. Rosalía") == "lisa"


@pytest.mark.parametrize(
	"title",
	["Kill This Love [Lyrics]", "Kill This Love (feat. Somebody)", "kill this love M/V", "Kill This Love - Live"],
)
def test_noise_variants_share_one_key(title):
	assert tracks.track_key(title, "BLACKPINK") == tracks.track_key("Kill This Love", "BLACKPINK")


def test_fuzzy_match_accepts_decorated_title():
	assert tracks.is_same_song("Kill This Love", "BLACKPINK", "kill this love (M/V)", "blackpink")


def test_fuzzy_match_rejects_different_songs():
	assert not tracks.is_same_song("Pink Venom", "BLACKPINK", "Shut Down", "BLACKPINK")


def test_fuzzy_match_is_symmetric():
	left = ("How You Like That", "BLACKPINK")
	right = ("How You Like That Dance Performance", "BLACKPINK")
	assert tracks.is_same_song(*left, *right) == tracks.is_same_song(*right, *left)


def test_empty_titles_never_match():
	assert not tracks.is_same_song("", "BLACKPINK", "", "BLACKPINK")
	assert not tracks.is_same_song("   ", "BLACKPINK", "Kill This Love", "BLACKPINK")


def test_classify_platform():
	assert tracks.classify_platform("Shut Down", "https://i.scdn.co/image/abc") == tracks.SPOTIFY
	assert tracks.classify_platform("BLACKPINK - Shut Down (Official Music Video)") == tracks.YOUTUBE
	assert tracks.classify_platform("Shut Down M/V") == tracks.YOUTUBE
	assert tracks.classify_platform("Shut Down") == tracks.OTHER


def test_matches_any():
	candidates = [("Pink Venom", "BLACKPINK"), ("Shut Down", "BLACKPINK")]
	assert tracks.matches_any("BLACKPINK - Shut Down (Official Audio)", "BLACKPINK", candidates)
	assert not tracks.matches_any("Lovesick Girls", "BLACKPINK", candidates)
