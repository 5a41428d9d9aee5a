import unittest

from metadata.normalize import clean_title, normalize_text, strip_geographic_context


class NormalizeTextTests(unittest.TestCase):
    def test_lowercases_and_strips_diacritics(self):
        self.assertEqual(normalize_text("Canción Número Uno"), "cancion numero uno")

    def test_separators_and_punctuation_become_spaces(self):
        self.assertEqual(normalize_text("Simon & Garfunkel/Live!"), "simon garfunkel live")
        self.assertEqual(normalize_text("Don't   Stop--Me"), "don t stop me")

    def test_digits_are_preserved(self):
        self.assertEqual(normalize_text("3005 (Remix) 4EVA"), "3005 remix 4eva")

    def test_empty_and_non_string_input(self):
        self.assertEqual(normalize_text(""), "")
        self.assertEqual(normalize_text(None), "")
        self.assertEqual(normalize_text(42), "")

    def test_idempotent(self):
        samples = [
            "Beyoncé — Halo (Live) [HD]",
            "  AC/DC & Friends  ",
            "Ñandú 1999",
            "¿Qué Pasa?",
            "",
        ]
        for sample in samples:
            once = normalize_text(sample)
            self.assertEqual(normalize_text(once), once)


class CleanTitleTests(unittest.TestCase):
    def test_removes_editorial_noise(self):
        self.assertEqual(clean_title("Halo (Official Music Video) [HD]"), "Halo")
        self.assertEqual(clean_title("Halo (Lyric Video)"), "Halo")
        self.assertEqual(clean_title("Despacito (Video Oficial)"), "Despacito")
        self.assertEqual(clean_title("Song [Explicit] (2019)"), "Song")

    def test_removes_semantic_subtitles(self):
        self.assertEqual(clean_title("Shallow (From A Star Is Born)"), "Shallow")
        self.assertEqual(clean_title("Stay (feat. Justin Bieber)"), "Stay")

    def test_keeps_version_words(self):
        self.assertEqual(clean_title("Halo (Remix)"), "Halo (Remix)")
        self.assertEqual(clean_title("Halo (2011 Remaster)"), "Halo (2011 Remaster)")
        self.assertIn("Live", clean_title("Halo (Live) (Official Video)"))

    def test_strips_trailing_separator(self):
        self.assertEqual(clean_title("Halo - (Official Audio)"), "Halo")

    def test_curly_quotes_are_straightened(self):
        self.assertEqual(clean_title("Don’t Stop"), "Don't Stop")

    def test_empty_input(self):
        self.assertEqual(clean_title(None), "")
        self.assertEqual(clean_title(""), "")


class GeographicContextTests(unittest.TestCase):
    def test_removes_venue_phrases(self):
        self.assertEqual(strip_geographic_context("Halo (Live at Wembley)"), "Halo")
        self.assertEqual(strip_geographic_context("Halo [Live from Madrid]"), "Halo")
        self.assertEqual(strip_geographic_context("Halo (Recorded at Abbey Road)"), "Halo")
        self.assertEqual(strip_geographic_context("Halo (En Vivo en Buenos Aires)"), "Halo")

    def test_leaves_plain_titles_alone(self):
        self.assertEqual(strip_geographic_context("Halo (Remix)"), "Halo (Remix)")

    def test_strips_trailing_dash(self):
        self.assertEqual(strip_geographic_context("Halo - (Live in Paris)"), "Halo")


if __name__ == "__main__":
    unittest.main()
