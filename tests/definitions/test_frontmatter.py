"""
Tests for metadata block extraction.

Tests verify that:
- Leading ``---`` blocks are split from the body, including repeated blocks
- The strict YAML pass rejects what it cannot read
- The line scanner recovers values YAML cannot parse
- Blocks merge with first non-empty value winning
"""

import agentry.definitions.frontmatter as frontmatter


class TestSplitBlocks:
    """Tests for split_blocks()."""

    def test_single_block(self) -> None:
        """One block is split from the body."""
        blocks, rest = frontmatter.split_blocks("---\nname: a\n---\n\nBody text\n")
        assert blocks == ["name: a"]
        assert rest.strip() == "Body text"

    def test_no_block(self) -> None:
        """Content without a leading block returns no blocks."""
        blocks, rest = frontmatter.split_blocks("# Title\n\nname: a\n")
        assert blocks == []
        assert rest == "# Title\n\nname: a\n"

    def test_block_must_start_file(self) -> None:
        """A block later in the file is not metadata."""
        blocks, _ = frontmatter.split_blocks("intro\n---\nname: a\n---\n")
        assert blocks == []

    def test_consecutive_blocks(self) -> None:
        """Directly following blocks are all collected."""
        content = "---\nname: a\n---\n---\ndescription: B\n---\nBody"
        blocks, rest = frontmatter.split_blocks(content)
        assert blocks == ["name: a", "description: B"]
        assert rest == "Body"

    def test_blocks_separated_by_blank_lines(self) -> None:
        """Blank lines between blocks are allowed."""
        content = "---\nname: a\n---\n\n\n---\ntags: [x]\n---\n\nBody"
        blocks, rest = frontmatter.split_blocks(content)
        assert blocks == ["name: a", "tags: [x]"]
        assert rest.strip() == "Body"

    def test_horizontal_rule_in_body_not_merged(self) -> None:
        """A following ``---`` section without key lines stays in the body."""
        content = "---\nname: a\n---\n---\nJust prose here\n---\n"
        blocks, rest = frontmatter.split_blocks(content)
        assert blocks == ["name: a"]
        assert "Just prose here" in rest

    def test_empty_block(self) -> None:
        """An empty block yields an empty string."""
        blocks, rest = frontmatter.split_blocks("---\n---\nBody")
        assert blocks == [""]
        assert rest == "Body"

    def test_crlf_line_endings(self) -> None:
        """Windows line endings are accepted."""
        blocks, rest = frontmatter.split_blocks("---\r\nname: a\r\n---\r\nBody")
        assert blocks == ["name: a"]
        assert rest == "Body"

    def test_byte_order_mark_ignored(self) -> None:
        """A leading BOM does not hide the block."""
        blocks, _ = frontmatter.split_blocks("\ufeff---\nname: a\n---\n")
        assert blocks == ["name: a"]


class TestLoadYamlBlock:
    """Tests for load_yaml_block()."""

    def test_mapping(self) -> None:
        """A YAML mapping is returned as a dict."""
        assert frontmatter.load_yaml_block("name: a\ntags: [x, y]") == {
            "name": "a",
            "tags": ["x", "y"],
        }

    def test_empty_block_is_empty_mapping(self) -> None:
        """An empty block is an empty mapping, not a failure."""
        assert frontmatter.load_yaml_block("") == {}

    def test_invalid_yaml_returns_none(self) -> None:
        """Unparseable YAML returns None."""
        assert frontmatter.load_yaml_block("description: Use this: when it breaks") is None

    def test_non_mapping_returns_none(self) -> None:
        """A YAML list is not metadata."""
        assert frontmatter.load_yaml_block("- a\n- b") is None


class TestScanBlock:
    """Tests for the tolerant line scanner."""

    def test_unquoted_colon_in_value(self) -> None:
        """Values containing colons are kept whole."""
        data = frontmatter.scan_block(
            "name: helper\ndescription: Use this: when it breaks\ntools: Read, Grep"
        )
        assert data == {
            "name": "helper",
            "description": "Use this: when it breaks",
            "tools": "Read, Grep",
        }

    def test_quoted_values(self) -> None:
        """Surrounding quotes are stripped."""
        data = frontmatter.scan_block("name: 'helper'\ndescription: \"A: B\"")
        assert data["name"] == "helper"
        assert data["description"] == "A: B"

    def test_inline_list(self) -> None:
        """Inline ``[a, b]`` values become lists."""
        data = frontmatter.scan_block("tags: [x, 'y']")
        assert data["tags"] == ["x", "y"]

    def test_dash_list(self) -> None:
        """Indented ``- item`` lines become a list."""
        data = frontmatter.scan_block("tags:\n  - x\n  - y\nname: a")
        assert data["tags"] == ["x", "y"]
        assert data["name"] == "a"

    def test_long_description_only_ends_at_known_key(self) -> None:
        """Inside a description with literal \\n, unknown keys are continuation."""
        block = (
            "name: helper\n"
            "description: Use this agent when needed.\\nExamples:\n"
            "context: the user asks for help\n"
            'user: "help me"\n'
            "tools: Read, Grep"
        )
        data = frontmatter.scan_block(block)
        assert data["name"] == "helper"
        assert data["description"].startswith("Use this agent when needed.\\nExamples:")
        assert "context: the user asks for help" in data["description"]
        assert 'user: "help me"' in data["description"]
        assert "context" not in data
        assert "user" not in data
        assert data["tools"] == "Read, Grep"

    def test_short_description_ends_at_any_key(self) -> None:
        """A short description ends at the next key line."""
        data = frontmatter.scan_block("description: Short\ncolor: blue")
        assert data == {"description": "Short", "color": "blue"}

    def test_continuation_lines_joined(self) -> None:
        """Indented lines continue the previous value."""
        data = frontmatter.scan_block("description: first\n  second\n  third")
        assert data["description"] == "first second third"

    def test_duplicate_key_keeps_first(self) -> None:
        """A repeated key within one block keeps the first value."""
        data = frontmatter.scan_block("name: a\nname: b")
        assert data["name"] == "a"

    def test_no_keys(self) -> None:
        """Text without key lines yields an empty mapping."""
        assert frontmatter.scan_block("just some words\nmore words") == {}


class TestMergeMetadata:
    """Tests for merge_metadata()."""

    def test_first_non_empty_wins(self) -> None:
        """Earlier non-empty values win over later ones."""
        merged = frontmatter.merge_metadata(
            [{"description": "A"}, {"description": "B", "tags": ["x"]}]
        )
        assert merged == {"description": "A", "tags": ["x"]}

    def test_empty_values_are_filled(self) -> None:
        """Empty values are replaced by later non-empty ones."""
        merged = frontmatter.merge_metadata(
            [{"description": "", "tools": None, "tags": []}, {"description": "B", "tools": "Read", "tags": ["x"]}]
        )
        assert merged == {"description": "B", "tools": "Read", "tags": ["x"]}

    def test_key_order_follows_first_appearance(self) -> None:
        """Keys keep the order in which they first appeared."""
        merged = frontmatter.merge_metadata([{"b": 1}, {"a": 2, "b": 3}])
        assert list(merged) == ["b", "a"]
