"""Tests for utils text helpers."""

from utils import format_number, html_to_text, remove_meta_tags, truncate


class TestHtmlToText:
    def test_plain_text_unchanged(self):
        assert html_to_text("already text") == "already text"
        assert html_to_text("") == ""

    def test_structure_survives(self):
        html = (
            "<html><body><header>Site</header>"
            "<h2>Install</h2><p>Run <a href='/pip'>pip</a> now.</p>"
            "<ul><li>fast</li><li>small</li></ul>"
            "<style>p{color:red}</style><footer>(c)</footer></body></html>"
        )
        text = html_to_text(html)

        assert "## Install" in text
        assert "Run [pip](/pip) now." in text
        assert "- fast\n- small" in text
        assert "Site" not in text
        assert "color" not in text
        assert "(c)" not in text

    def test_collapses_blank_runs(self):
        text = html_to_text("<div>a</div><br><br><br><br><div>b</div>")
        assert "\n\n\n" not in text
        assert text.startswith("a")
        assert text.endswith("b")


def test_remove_meta_tags():
    content = "Title\nMeta: description\n  - Meta: keywords\nBody"
    assert remove_meta_tags(content) == "Title\nBody"


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("abcdefghij", 8) == "abcde..."


def test_format_number():
    assert format_number(32000) == "32,000"
