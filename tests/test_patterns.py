import pytest

from colemencopy.errors import ArgumentError
from colemencopy.patterns import PatternMatcher, WildcardPattern, match


def test_empty_pattern_list_matches_everything() -> None:
    assert match("anything.bin", [], case_sensitive=True)
    assert match("", [], case_sensitive=True)


def test_star_dot_star_matches_names_without_extension() -> None:
    assert match("Makefile", ["*.*"], case_sensitive=True)
    assert match("photo.jpg", ["*.*"], case_sensitive=True)


def test_literal_pattern_requires_exact_name() -> None:
    assert match("a.txt", ["a.txt"], case_sensitive=True)
    assert not match("ba.txt", ["a.txt"], case_sensitive=True)
    assert not match("a.txt.bak", ["a.txt"], case_sensitive=True)


def test_star_matches_any_run_including_empty() -> None:
    assert match(".jpg", ["*.jpg"], case_sensitive=True)
    assert match("img.jpg", ["*.jpg"], case_sensitive=True)
    assert not match("img.jpeg", ["*.jpg"], case_sensitive=True)
    assert match("report-2024-final.doc", ["report*final*"], case_sensitive=True)
    assert not match("report-2024.doc", ["report*final*"], case_sensitive=True)


def test_head_and_tail_must_not_overlap() -> None:
    assert not match("ab", ["ab*b"], case_sensitive=True)
    assert match("abb", ["ab*b"], case_sensitive=True)


def test_middle_fragments_are_matched_in_order() -> None:
    assert match("a-x-y-z", ["a*x*y*z"], case_sensitive=True)
    assert not match("a-y-x-z", ["a*x*y*z"], case_sensitive=True)


def test_question_mark_is_literal() -> None:
    assert match("a?.txt", ["a?.txt"], case_sensitive=True)
    assert not match("ab.txt", ["a?.txt"], case_sensitive=True)


def test_case_insensitive_matching() -> None:
    assert match("IMG.JPG", ["*.jpg"], case_sensitive=False)
    assert not match("IMG.JPG", ["*.jpg"], case_sensitive=True)


def test_any_of_several_patterns_matches() -> None:
    matcher = PatternMatcher(["*.jpg", "*.png"], case_sensitive=True)

    assert matcher.match("a.png")
    assert not matcher.match("a.gif")
    assert matcher.patterns == ("*.jpg", "*.png")


@pytest.mark.parametrize("text", ["", "dir/*.txt", "dir\\*.txt"])
def test_invalid_patterns_are_rejected(text: str) -> None:
    with pytest.raises(ArgumentError):
        WildcardPattern.compile(text)
