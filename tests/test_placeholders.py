from init_pipeline.placeholders import is_autolink, is_html_construct, scan


def _tags(content: str) -> set[str]:
    return {hit.tag for hit in scan(content)}


def test_angle_placeholder_is_flagged_with_line_number() -> None:
    hits = scan("# Title\n\n- Purpose: <what the project does>\n")
    assert [(hit.tag, hit.line, hit.text) for hit in hits] == [("angle", 3, "<what the project does>")]


def test_autolinks_are_not_placeholders() -> None:
    content = "See <https://example.com/docs>, <mailto:ops@example.com>, <tel:+15551234> and <ops@example.com>.\n"
    assert _tags(content) == set()
    assert is_autolink("HTTP://EXAMPLE.COM")
    assert not is_autolink("owner name @ team")


def test_html_constructs_are_not_placeholders() -> None:
    content = "<!-- note -->\n<details>\n<summary>More</summary>\n<br/>\n<img src=x.png />\n</details>\n"
    assert _tags(content) == set()
    assert is_html_construct("!DOCTYPE html")
    assert not is_html_construct("customer name")


def test_angle_bracket_spanning_lines_or_too_long_is_ignored() -> None:
    assert _tags("a < b\nand c > d\n") == set()
    assert _tags("<" + "x" * 81 + ">\n") == set()


def test_ellipsis_bullet_and_value_rules() -> None:
    assert _tags("- ...\n") == {"ellipsis-bullet"}
    assert _tags("  * ...  \n") == {"ellipsis-bullet"}
    assert _tags("Latency: ...\n") == {"ellipsis-value"}
    assert _tags("We will continue... later\n") == set()


def test_soft_markers() -> None:
    assert _tags("TODO: confirm hosting\n") == {"todo"}
    assert _tags("Decision is tbd\n") == {"tbd"}
    assert _tags("The TBDX suffix is fine\n") == set()
