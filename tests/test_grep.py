import io

import pytest

from xvfs.grep import grep, main, match, match_here, match_star


@pytest.mark.parametrize(
    "pattern, text, expected",
    [
        ("^ab", "abc", True),
        ("^ab", "cab", False),
        ("b$", "ab", True),
        ("b$", "ba", False),
        ("a.c", "xabcx", True),
        ("a*b", "b", True),
        ("^a*$", "aaa", True),
        ("^a*$", "aab", False),
        ("^.*z", "abcz", True),
        ("", "", True),
        ("x", "", False),
        ("^$", "", True),
    ],
)
def test_match(pattern, text, expected):
    assert match(pattern, text) is expected


def test_match_here_anchored():
    assert match_here("bc", "bcd") is True
    assert match_here("bc", "abc") is False


def test_match_star_zero_or_more():
    assert match_star("a", "b", "b") is True
    assert match_star("a", "b", "aaab") is True
    assert match_star("a", "b", "aaac") is False
    assert match_star(".", "c", "xyzc") is True


def test_grep_yields_matching_lines():
    stream = io.StringIO("apple\nbanana\ncherry\n")
    assert list(grep("an", stream)) == ["banana\n"]


def test_grep_ignores_unterminated_last_line():
    stream = io.StringIO("one\ntwo")
    assert list(grep("o", stream)) == ["one\n"]


def test_grep_many_lines_across_buffers():
    lines = [f"line {n}\n" for n in range(500)]
    stream = io.StringIO("".join(lines))
    assert list(grep("^line", stream)) == lines


def test_grep_drops_overlong_line():
    stream = io.StringIO("z" * 2000 + "\nzebra\n")
    result = list(grep("^zebra", stream))
    assert result == ["zebra\n"]


def test_main_file(tmp_path, capsys):
    path = tmp_path / "words"
    path.write_text("red\ngreen\nblue\n")
    assert main(["e$", str(path)]) == 0
    assert capsys.readouterr().out == "blue\n"


def test_main_missing_file(tmp_path, capsys):
    missing = tmp_path / "nothing"
    assert main(["x", str(missing)]) == 1
    assert f"grep: cannot open {missing}" in capsys.readouterr().out


def test_main_usage():
    assert main([]) == 1