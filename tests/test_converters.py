"""Tests for the Markdown <-> Apple Notes HTML converters."""

from notesexporter.converters import html_to_markdown, markdown_to_html


class TestMarkdownToHtml:
    """Tests for markdown_to_html."""

    def test_paragraphs_become_divs(self):
        html = markdown_to_html("First paragraph\n\nSecond paragraph")
        assert "<div>First paragraph</div>" in html
        assert "<div>Second paragraph</div>" in html
        assert "<p>" not in html

    def test_emphasis_uses_b_and_i(self):
        html = markdown_to_html("**bold** and *italic*")
        assert "<b>bold</b>" in html
        assert "<i>italic</i>" in html
        assert "<strong>" not in html

    def test_lists(self):
        html = markdown_to_html("- one\n- two")
        assert "<ul>" in html
        assert "<li>one</li>" in html


class TestHtmlToMarkdown:
    """Tests for html_to_markdown."""

    def test_headings_and_paragraphs(self):
        md = html_to_markdown("<div><h1>Title</h1></div><div>Some <b>bold</b> text</div>")
        assert md == "# Title\n\nSome **bold** text\n"

    def test_inline_formatting(self):
        md = html_to_markdown(
            '<div><i>it</i> <strike>old</strike> <tt>code</tt> '
            '<a href="https://example.com">site</a></div>'
        )
        assert md == "*it* ~~old~~ `code` [site](https://example.com)\n"

    def test_nested_lists(self):
        md = html_to_markdown("<ul><li>One</li><li>Two<ul><li>Inner</li></ul></li></ul>")
        assert md == "- One\n- Two\n    - Inner\n"

    def test_ordered_list(self):
        md = html_to_markdown("<ol><li>First</li><li>Second</li></ol>")
        assert md == "1. First\n2. Second\n"

    def test_table(self):
        md = html_to_markdown(
            "<object><table><tbody>"
            "<tr><td>a</td><td>b</td></tr>"
            "<tr><td>1</td><td>2|3</td></tr>"
            "</tbody></table></object>"
        )
        assert md == "| a | b |\n| --- | --- |\n| 1 | 2\\|3 |\n"

    def test_images_stay_embedded(self, png_data_uri):
        md = html_to_markdown(f'<div><img src="{png_data_uri}" alt="photo"></div>')
        assert md == f"![photo]({png_data_uri})\n"

    def test_empty_content(self):
        assert html_to_markdown("") == "\n"
