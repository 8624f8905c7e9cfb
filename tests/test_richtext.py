"""Tests for parsing note HTML into rich documents."""

import base64

from notesexporter.richtext import decode_data_uri, parse_content


class TestDecodeDataUri:
    """Tests for decode_data_uri."""

    def test_png(self, png_bytes, png_data_uri):
        attachment = decode_data_uri(png_data_uri)
        assert attachment.mime_type == "image/png"
        assert attachment.data == png_bytes

    def test_tolerates_whitespace_and_parameters(self, png_bytes):
        payload = base64.b64encode(png_bytes).decode("ascii")
        wrapped = "\n".join(payload[i:i + 40] for i in range(0, len(payload), 40))
        attachment = decode_data_uri(f"data:image/PNG;charset=binary;base64,{wrapped}")
        assert attachment.mime_type == "image/png"
        assert attachment.data == png_bytes

    def test_rejects_invalid_payloads(self):
        assert decode_data_uri("data:image/png;base64,!!!not base64!!!") is None
        assert decode_data_uri("data:image/png;base64,") is None
        assert decode_data_uri("https://example.com/cat.png") is None
        assert decode_data_uri("data:text/plain,hello") is None


class TestParseContent:
    """Tests for parse_content."""

    def test_div_paragraphs_and_blank_lines(self):
        document = parse_content("<div>Hello <b>World</b></div><div><br></div><div>Next</div>")
        assert document.text == "Hello World\n\nNext"

        first = document.paragraphs[0]
        assert [run.text for run in first.runs] == ["Hello ", "World"]
        assert first.runs[1].style.bold
        assert not first.runs[0].style.bold

    def test_inline_styles(self):
        document = parse_content(
            '<div><i>it</i><u>under</u><strike>gone</strike><tt>mono</tt>'
            '<span style="font-weight: bold">heavy</span>'
            '<a href="https://example.com">link</a></div>'
        )
        runs = document.paragraphs[0].runs
        styles = {run.text: run.style for run in runs}
        assert styles["it"].italic
        assert styles["under"].underline
        assert styles["gone"].strike
        assert styles["mono"].monospace
        assert styles["heavy"].bold
        assert styles["link"].link == "https://example.com"

    def test_headings(self):
        document = parse_content("<h1>Recipe</h1><div>Steps</div>")
        heading, body = document.paragraphs
        assert (heading.kind, heading.level, heading.text) == ("heading", 1, "Recipe")
        assert body.kind == "body"

    def test_lists(self):
        document = parse_content(
            "<ul><li>One</li><li>Two<ul><li>Inner</li></ul></li></ul>"
            "<ol><li>First</li><li>Second</li></ol>"
        )
        assert [p.text for p in document.paragraphs] == [
            "• One", "• Two", "• Inner", "1. First", "2. Second",
        ]
        assert document.paragraphs[2].level == 2
        assert all(p.kind == "item" for p in document.paragraphs)

    def test_table_cells_are_tab_separated(self):
        document = parse_content(
            "<object><table><tbody>"
            "<tr><td>Flour</td><td>200g</td></tr>"
            "<tr><td>Sugar</td><td>100g</td></tr>"
            "</tbody></table></object>"
        )
        assert document.text == "Flour\t200g\nSugar\t100g"

    def test_preformatted_keeps_lines(self):
        document = parse_content("<pre>line one\n  indented</pre>")
        assert document.text == "line one\n  indented"

    def test_skips_head_and_comments(self):
        document = parse_content(
            "<head><title>Ignored</title><style>div {}</style></head>"
            "<!-- comment --><div>Body</div>"
        )
        assert document.text == "Body"

    def test_images_are_decoded_in_place(self, png_data_uri):
        document = parse_content(f'<div>Look <img src="{png_data_uri}"> here</div>')
        paragraph = document.paragraphs[0]
        assert len(paragraph.images) == 1
        assert paragraph.text == "Look  here"
        assert len(document.attachments) == 1

    def test_images_dropped_when_not_extracted(self, png_data_uri):
        document = parse_content(f'<div><img src="{png_data_uri}"></div>', extract_images=False)
        assert document.attachments == []
        assert document.paragraphs == []

    def test_undecodable_images_are_skipped(self):
        document = parse_content(
            '<div>A<img src="data:image/png;base64,%%%">'
            '<img src="https://example.com/x.png">B</div>'
        )
        assert document.attachments == []
        assert document.text == "AB"

    def test_empty_content(self):
        assert parse_content("").paragraphs == []
        assert parse_content(None).text == ""
