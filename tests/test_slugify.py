"""Tests for slugify utility function."""

from livesync.core.utils import count_lines, middle_line, slugify


def test_slugify_basic():
    """Test basic slugification."""
    assert slugify("Getting Started") == "getting-started"
    assert slugify("Hello World") == "hello-world"


def test_slugify_unicode():
    """Test unicode normalization."""
    assert slugify("Riemann–Christoffel symbols") == "riemann-christoffel-symbols"
    assert slugify("Test—Example") == "test-example"
    assert slugify("Café notes") == "cafe-notes"


def test_slugify_punctuation():
    """Test punctuation removal."""
    assert slugify("Hello, World!") == "hello-world"
    assert slugify("Test (with parentheses)") == "test-with-parentheses"
    assert slugify("Question?") == "question"


def test_slugify_dashes_and_spaces():
    assert slugify("Multiple   spaces   here") == "multiple-spaces-here"
    assert slugify("Test - - Example") == "test-example"
    assert slugify("-Already-Has-Dashes-") == "already-has-dashes"


def test_slugify_empty():
    """Headings made only of punctuation have no slug."""
    assert slugify("") == ""
    assert slugify("   ") == ""
    assert slugify("???") == ""


def test_slugify_special_chars():
    assert slugify("File & Folder") == "file-folder"
    assert slugify("C++ Programming") == "c-programming"
    assert slugify("Node.js") == "nodejs"


def test_middle_line():
    assert middle_line(10, 20) == 15
    assert middle_line(10, 11) == 10
    assert middle_line(7, 7) == 7
    # reversed ranges are tolerated
    assert middle_line(20, 10) == 15


def test_count_lines():
    assert count_lines("") == 0
    assert count_lines("a\nb\n") == 2
    assert count_lines("a\nb") == 1
